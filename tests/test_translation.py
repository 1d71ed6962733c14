"""Tests for picking a language from gateway-provided strings."""

import pytest

from reconciler.utils.translation import clean_language_code, translate


@pytest.mark.parametrize("language,expected", [
    ("de_de", "de-DE"),
    ("en-us", "en-US"),
    ("FR", "fr"),
    ("", None),
    (None, None),
])
def test_clean_language_code(language, expected):
    assert clean_language_code(language) == expected


def test_translate_prefers_exact_then_primary_language():
    strings = {"en-US": "declined", "de-CH": "abgelehnt", "fr-FR": "refusé"}

    assert translate(strings, "fr_FR") == "refusé"
    assert translate(strings, "de-DE") == "abgelehnt"


def test_translate_falls_back():
    assert translate({"en-US": "declined", "it-IT": "rifiutato"}, "ja-JP") == "declined"
    assert translate({"it-IT": "rifiutato"}, "ja-JP") == "rifiutato"
    assert translate({"it-IT": "rifiutato"}) == "rifiutato"


def test_translate_nothing():
    assert translate(None, "en-US") is None
    assert translate({}, "en-US") is None
