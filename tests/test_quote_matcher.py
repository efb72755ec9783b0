from core.quote_matcher import (
    QuotedImprovementMatcher,
    normalize_with_offsets,
    normalized_match,
    similarity_match,
)
from domain import QuotedImprovement


def _quote(text):
    return QuotedImprovement(original_text=text, improved_text="better", explanation="why")


def test_quote_with_trailing_period_in_document_is_anchored():
    doc = "Hello. I am very good at coding. I also like chess."
    anchored = QuotedImprovementMatcher().match(doc, _quote("I am very good at coding"))
    assert anchored.anchored
    assert anchored.strategy in ("exact", "normalized")
    assert anchored.anchor.slice(doc) == "I am very good at coding"


def test_exact_match_is_case_sensitive_then_falls_through():
    doc = "i am VERY good at coding and robotics"
    anchored = QuotedImprovementMatcher().match(doc, _quote("I am very good at coding"))
    # token keys are lowercased, so the similarity pass still finds it
    assert anchored.strategy == "similar"
    assert anchored.anchor.slice(doc) == "i am VERY good at coding"


def test_normalized_match_maps_back_to_original_offsets():
    doc = "My research\n   focused on   graph\tneural networks."
    anchored = QuotedImprovementMatcher().match(doc, _quote("research focused on graph neural networks"))
    assert anchored.strategy == "normalized"
    assert anchored.anchor.slice(doc) == "research\n   focused on   graph\tneural networks"


def test_normalize_with_offsets_trims_and_collapses():
    text, offsets = normalize_with_offsets("  a \n\n b  ")
    assert text == "a b"
    assert offsets == [2, 3, 7]


def test_normalized_match_blank_quote():
    assert normalized_match("anything", "   ") is None


def test_similarity_match_accepts_paraphrase_above_threshold():
    doc = "First paragraph here.\n\nDuring my internship I led a team of five engineers on a data pipeline."
    found = similarity_match(doc, "I led a team of five engineers on the pipeline")
    assert found is not None
    span, score = found
    assert score >= 0.8
    assert doc[span.start:span.end].startswith("I led a team")


def test_similarity_below_threshold_is_unanchored():
    doc = "I enjoy hiking and photography on weekends."
    anchored = QuotedImprovementMatcher().match(doc, _quote("My thesis examined protein folding kinetics"))
    assert not anchored.anchored
    assert anchored.strategy is None
    assert anchored.to_dict()["anchor"] is None
    assert anchored.to_dict()["improvedText"] == "better"


def test_similarity_does_not_span_paragraphs():
    doc = "I studied physics\n\nat a small college in Ohio"
    assert similarity_match(doc, "I studied physics at a small college") is None


def test_blank_quote_or_document_is_unanchored():
    matcher = QuotedImprovementMatcher()
    assert not matcher.match("Some document", _quote("  ")).anchored
    assert not matcher.match("", _quote("Some quote")).anchored


def test_matching_is_idempotent():
    doc = "I have   always loved\nbuilding things. I am very good at coding!"
    matcher = QuotedImprovementMatcher()
    quotes = [_quote("always loved building things"), _quote("I am very good at coding"), _quote("not present at all here")]
    first = matcher.match_all(doc, quotes)
    second = matcher.match_all(doc, quotes)
    assert first == second
    assert [a.anchored for a in first] == [True, True, False]


def test_custom_strategies_are_tried_in_order():
    calls = []

    def never(doc, quote):
        calls.append("never")
        return None

    matcher = QuotedImprovementMatcher(strategies=[("never", never)])
    anchored = matcher.match("I am very good at coding", _quote("I am very good at coding"))
    assert calls == ["never"]
    assert not anchored.anchored
