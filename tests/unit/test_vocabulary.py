from orderhub.domain.vocabulary import (
    DEFAULT_VOCABULARY,
    GENIKI_VOCABULARY,
    MEEST_VOCABULARY,
    normalize_text,
    vocabulary_for,
)


def test_normalize_text_strips_case_accents_and_separators():
    assert normalize_text("  Παραδόθηκε ") == "παραδοθηκε"
    assert normalize_text("RETURNED_TO-SENDER") == "returned to sender"
    assert normalize_text(None) == ""


def test_keyword_matches_at_word_start_only():
    assert DEFAULT_VOCABULARY.is_returned("Returned to sender")
    assert DEFAULT_VOCABULARY.is_delivered("Parcel delivered")
    assert not DEFAULT_VOCABULARY.is_delivered("UNDELIVERED")


def test_meest_refused_counts_as_returned():
    assert MEEST_VOCABULARY.is_returned("REFUSED")
    assert not GENIKI_VOCABULARY.is_returned("REFUSED")


def test_unknown_courier_uses_default():
    assert vocabulary_for("someone-else") is DEFAULT_VOCABULARY
    assert vocabulary_for(None) is DEFAULT_VOCABULARY


def test_empty_text_matches_nothing():
    assert not DEFAULT_VOCABULARY.is_delivered("")
    assert not DEFAULT_VOCABULARY.is_returned(None)
