"""
Unit tests for the three-stage matcher (exact -> synonym -> fuzzy containment).
Run from backend: python -m pytest tests/test_matcher.py -v
"""


def _snapshot(kind, *entries):
    from labelcheck.reference.reference_schema import DatasetSnapshot, ReferenceEntry
    built = [
        ReferenceEntry(canonical_name=name, dataset_kind=kind, synonyms=tuple(syns), source_citation=f"cite {name}")
        for name, syns in entries
    ]
    return DatasetSnapshot.build(kind, built)


def _allergens():
    from labelcheck.reference.reference_schema import DatasetKind
    return _snapshot(
        DatasetKind.ALLERGEN_DERIVATIVE,
        ("Milk", ["whey", "casein"]),
        ("Shellfish", ["shrimp", "crab", "shellfish extract"]),
        ("Soybeans", ["soy", "soy lecithin"]),
    )


def test_exact_match_on_canonical_name():
    """Canonical name match is EXACT with HIGH confidence."""
    from labelcheck.matching.matcher import MatchConfidence, MatchType, match
    result = match("  MILK ", _allergens())
    assert result.matched
    assert result.match_type == MatchType.EXACT
    assert result.confidence == MatchConfidence.HIGH
    assert result.matched_entry.canonical_name == "Milk"


def test_synonym_match():
    """Synonym match reports the synonym that produced the hit."""
    from labelcheck.matching.matcher import MatchType, match
    result = match("Casein", _allergens())
    assert result.match_type == MatchType.SYNONYM
    assert result.matched_term == "casein"
    assert result.matched_entry.canonical_name == "Milk"


def test_fuzzy_containment_query_contains_reference():
    """'Whey Protein' contains the reference term 'whey' -> FUZZY, MEDIUM."""
    from labelcheck.matching.matcher import MatchConfidence, MatchType, match
    result = match("Whey Protein", _allergens())
    assert result.match_type == MatchType.FUZZY
    assert result.confidence == MatchConfidence.MEDIUM
    assert result.matched_entry.canonical_name == "Milk"


def test_fuzzy_never_matches_on_shared_generic_token():
    """'cordyceps extract' shares only 'extract' with 'shellfish extract'."""
    from labelcheck.matching.matcher import MatchType, match
    result = match("cordyceps extract", _allergens())
    assert not result.matched
    assert result.match_type == MatchType.NONE
    assert result.matched_entry is None


def test_fuzzy_direction_reference_must_be_in_query():
    """A query that is only part of a reference token does not match it."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import match
    snap = _snapshot(DatasetKind.ALLERGEN_DERIVATIVE, ("Shellfish", []))
    assert not match("fish", snap).matched
    assert not match("shell fish", snap).matched
    assert match("shellfish stock", snap).matched


def test_fuzzy_one_shared_token_matches_multi_word_term():
    """'Ginseng Root Extract' contains 'ginseng' from 'Panax Ginseng' -> FUZZY."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import MatchConfidence, MatchType, match
    snap = _snapshot(DatasetKind.GRAS, ("Panax Ginseng", []))
    result = match("Ginseng Root Extract", snap)
    assert result.matched
    assert result.match_type == MatchType.FUZZY
    assert result.confidence == MatchConfidence.MEDIUM
    assert result.matched_term == "Panax Ginseng"
    assert not match("Cordyceps Root Extract", snap).matched


def test_fuzzy_whole_words_only():
    """'crabapple' does not contain the word 'crab'; short tokens never fuzzy match."""
    from labelcheck.matching.matcher import match
    assert not match("crabapple", _allergens()).matched
    assert not match("soy sauce", _allergens()).matched


def test_exact_beats_synonym_beats_fuzzy():
    """A name that is canonical in one entry and a synonym in another resolves EXACT."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import MatchType, match
    snap = _snapshot(
        DatasetKind.GRAS,
        ("Ascorbic Acid Blend", ["vitamin c"]),
        ("Vitamin C", []),
        ("Ascorbic Acid", []),
    )
    exact = match("vitamin c", snap)
    assert exact.match_type == MatchType.EXACT
    assert exact.matched_entry.canonical_name == "Vitamin C"
    assert match("ascorbic acid", snap).matched_entry.canonical_name == "Ascorbic Acid"


def test_match_is_deterministic():
    """Same query and snapshot give the same result every time."""
    from labelcheck.matching.matcher import match
    snap = _allergens()
    results = {match("Shrimp Paste", snap) for _ in range(20)}
    assert len(results) == 1
    only = results.pop()
    assert only.matched_entry.canonical_name == "Shellfish"


def test_first_entry_wins_on_overlap():
    """Overlapping fuzzy terms resolve to the first entry in dataset order."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import match
    snap = _snapshot(DatasetKind.GRAS, ("Garlic", []), ("Onion", []))
    assert match("garlic onion seasoning", snap).matched_entry.canonical_name == "Garlic"


def test_allergen_false_positives():
    """Bee products never match an allergen, even through a synonym."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import Matcher, match
    snap = _snapshot(DatasetKind.ALLERGEN_DERIVATIVE, ("Bee Products", ["royal jelly", "jelly"]))
    assert not match("Royal Jelly", snap).matched
    assert not match("bee jelly", snap).matched
    assert match("jelly", snap).matched
    assert Matcher(false_positives={}).match("Royal Jelly", snap).matched


def test_false_positives_scoped_to_dataset():
    """The allergen false-positive list does not affect GRAS lookups."""
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import MatchType, match
    snap = _snapshot(DatasetKind.GRAS, ("Royal Jelly", []))
    assert match("royal jelly", snap).match_type == MatchType.EXACT


def test_empty_query_is_a_miss():
    """Blank input never matches."""
    from labelcheck.matching.matcher import match
    assert not match("   ", _allergens()).matched
    assert not match("", _allergens()).matched


def test_match_result_invariant():
    """matched=False forbids an entry; matched=True requires one."""
    import pytest
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.matching.matcher import MatchResult, MatchType
    with pytest.raises(ValueError):
        MatchResult(query_text="x", dataset=DatasetKind.GRAS, matched=False, match_type=MatchType.EXACT)
    with pytest.raises(ValueError):
        MatchResult(query_text="x", dataset=DatasetKind.GRAS, matched=True)
