"""
Anchoring of quoted improvements against the live document.

Quotes returned by the model are not guaranteed to be verbatim, so matching
falls through three strategies: exact, whitespace-normalized, then token
overlap over sliding windows within each paragraph.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from domain import AnchoredImprovement, QuotedImprovement, Span

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_EDGE_PUNCT = re.compile(r"^\W+|\W+$")

DEFAULT_THRESHOLD = 0.8

# (document, quote) -> (span, similarity) or None
MatchStrategy = Callable[[str, str], Optional[Tuple[Span, float]]]


def normalize_with_offsets(text: str) -> Tuple[str, List[int]]:
    """Collapse whitespace runs to one space and trim.

    Returns the normalized text and, for every normalized character, its
    index in the original text.
    """
    chars: List[str] = []
    offsets: List[int] = []
    for m in re.finditer(r"\S+|\s+", text):
        segment = m.group(0)
        if segment.isspace():
            if chars:
                chars.append(" ")
                offsets.append(m.start())
            continue
        for i, ch in enumerate(segment):
            chars.append(ch)
            offsets.append(m.start() + i)
    if chars and chars[-1] == " ":
        chars.pop()
        offsets.pop()
    return "".join(chars), offsets


def _token_key(token: str) -> str:
    return _EDGE_PUNCT.sub("", token.lower())


def _tokens(text: str, base: int = 0) -> List[Tuple[int, int, str]]:
    out = []
    for m in re.finditer(r"\S+", text):
        key = _token_key(m.group(0))
        if key:
            out.append((base + m.start(), base + m.end(), key))
    return out


def _paragraphs(text: str) -> Iterable[Tuple[int, str]]:
    start = 0
    for m in _PARAGRAPH_BREAK.finditer(text):
        yield start, text[start:m.start()]
        start = m.end()
    yield start, text[start:]


def exact_match(document: str, quote: str) -> Optional[Tuple[Span, float]]:
    if not quote:
        return None
    idx = document.find(quote)
    if idx < 0:
        return None
    return Span(idx, idx + len(quote)), 1.0


def normalized_match(document: str, quote: str) -> Optional[Tuple[Span, float]]:
    norm_quote, _ = normalize_with_offsets(quote)
    if not norm_quote:
        return None
    norm_doc, offsets = normalize_with_offsets(document)
    idx = norm_doc.find(norm_quote)
    if idx < 0:
        return None
    end = idx + len(norm_quote) - 1
    return Span(offsets[idx], offsets[end] + 1), 1.0


def token_overlap(window: Sequence[str], quote_counts: Counter, quote_len: int) -> float:
    if quote_len == 0:
        return 0.0
    overlap = Counter(window) & quote_counts
    return sum(overlap.values()) / quote_len


def similarity_match(document: str, quote: str, threshold: float = DEFAULT_THRESHOLD) -> Optional[Tuple[Span, float]]:
    """Best token-overlap window, accepted only at or above the threshold."""
    quote_keys = [key for _, _, key in _tokens(quote)]
    n = len(quote_keys)
    if n == 0:
        return None
    quote_counts = Counter(quote_keys)

    best: Optional[Tuple[float, int, int]] = None
    for base, paragraph in _paragraphs(document):
        tokens = _tokens(paragraph, base)
        if not tokens:
            continue
        size = min(n, len(tokens))
        for i in range(len(tokens) - size + 1):
            window = tokens[i:i + size]
            score = token_overlap([key for _, _, key in window], quote_counts, n)
            if best is None or score > best[0]:
                lo, hi = i, i + size - 1
                # trim edges that share nothing with the quote
                while lo < hi and tokens[lo][2] not in quote_counts:
                    lo += 1
                while hi > lo and tokens[hi][2] not in quote_counts:
                    hi -= 1
                best = (score, tokens[lo][0], tokens[hi][1])

    if best is None or best[0] < threshold:
        return None
    score, start, end = best
    return Span(start, end), score


class QuotedImprovementMatcher:
    """Resolves quoted improvements to spans. Pure and deterministic; never raises."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD,
                 strategies: Optional[Sequence[Tuple[str, MatchStrategy]]] = None) -> None:
        self.threshold = threshold
        if strategies is None:
            strategies = (
                ("exact", exact_match),
                ("normalized", normalized_match),
                ("similar", lambda doc, q: similarity_match(doc, q, self.threshold)),
            )
        self.strategies = list(strategies)

    def match(self, document: str, improvement: QuotedImprovement) -> AnchoredImprovement:
        quote = improvement.original_text or ""
        if not quote.strip() or not document:
            return AnchoredImprovement(improvement)
        for name, strategy in self.strategies:
            found = strategy(document, quote)
            if found is not None:
                span, score = found
                return AnchoredImprovement(improvement, anchor=span, strategy=name, similarity=score)
        return AnchoredImprovement(improvement)

    def match_all(self, document: str, improvements: Iterable[QuotedImprovement]) -> List[AnchoredImprovement]:
        return [self.match(document, imp) for imp in improvements]
