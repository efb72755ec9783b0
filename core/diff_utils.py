"""
Word-level diffs between a document and its regenerated draft.
"""

import difflib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List


class ChangeType(Enum):
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


@dataclass
class TextChange:
    type: ChangeType
    original_text: str
    new_text: str
    start: int  # offset in the original text
    end: int


@dataclass
class DiffStatistics:
    total_changes: int
    insertions: int
    deletions: int
    replacements: int
    words_changed: int
    similarity_score: float


def calculate_similarity(text1: str, text2: str) -> float:
    """Similarity ratio between two texts using sequence matcher."""
    return difflib.SequenceMatcher(None, text1, text2).ratio()


def word_diff(original: str, modified: str) -> List[TextChange]:
    """Word-level changes, with offsets into the original text."""
    changes: List[TextChange] = []

    # Split into words while preserving whitespace
    original_words = re.findall(r'\S+|\s+', original)
    modified_words = re.findall(r'\S+|\s+', modified)

    matcher = difflib.SequenceMatcher(None, original_words, modified_words, autojunk=False)

    position = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        original_segment = ''.join(original_words[i1:i2])
        modified_segment = ''.join(modified_words[j1:j2])
        start = position
        position += len(original_segment)
        if tag == 'equal':
            continue
        changes.append(TextChange(
            type={'delete': ChangeType.DELETE, 'insert': ChangeType.INSERT}.get(tag, ChangeType.REPLACE),
            original_text=original_segment,
            new_text=modified_segment,
            start=start,
            end=position,
        ))

    return changes


def calculate_statistics(changes: List[TextChange], original: str, modified: str) -> DiffStatistics:
    return DiffStatistics(
        total_changes=len(changes),
        insertions=sum(1 for c in changes if c.type == ChangeType.INSERT),
        deletions=sum(1 for c in changes if c.type == ChangeType.DELETE),
        replacements=sum(1 for c in changes if c.type == ChangeType.REPLACE),
        words_changed=sum(len(c.original_text.split()) + len(c.new_text.split()) for c in changes),
        similarity_score=calculate_similarity(original, modified),
    )


def format_change_for_api(change: TextChange) -> Dict[str, Any]:
    return {
        "type": change.type.value,
        "originalText": change.original_text,
        "newText": change.new_text,
        "position": {"start": change.start, "end": change.end},
    }


def format_statistics_for_api(stats: DiffStatistics) -> Dict[str, Any]:
    return {
        "totalChanges": stats.total_changes,
        "insertions": stats.insertions,
        "deletions": stats.deletions,
        "replacements": stats.replacements,
        "wordsChanged": stats.words_changed,
        "similarityScore": round(stats.similarity_score, 3),
    }
