"""Unit tests for Hangul/Latin language classification."""

import pytest

from govcrawl.rendering.language import LanguageDetector, contains_hangul
from govcrawl.services.models import Language


class TestLanguageDetector:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("디지털 정부 서비스 안내", Language.KO),
            ("KRDS 디자인 시스템", Language.KO_EN),
            ("Korea Design System", Language.EN),
            ("ㅎㅎ", Language.KO),
        ],
    )
    def test_classifies_text(self, text: str, expected: Language) -> None:
        assert LanguageDetector().detect(text).language == expected

    @pytest.mark.parametrize("text", ["", "   ", "12345 !!!", "2024.01.15"])
    def test_letterless_text_is_unknown(self, text: str) -> None:
        result = LanguageDetector().detect(text)

        assert result.language == Language.UNKNOWN
        assert result.hangul_ratio == 0.0

    def test_hangul_ratio(self) -> None:
        result = LanguageDetector().detect("가나 ab")
        assert result.hangul_ratio == pytest.approx(0.5)

    def test_short_text_below_minimum_is_unknown(self) -> None:
        detector = LanguageDetector(min_text_length=10)
        assert detector.detect("한국어").language == Language.UNKNOWN


def test_contains_hangul() -> None:
    assert contains_hangul("KRDS 가이드") is True
    assert contains_hangul("KRDS guide") is False
    assert contains_hangul(None) is False
    assert contains_hangul("") is False
