"""Language classification for Korean government pages.

Pages on the portal are Korean, English, or a mix of both. Classification is a
Unicode-range heuristic over the page text rather than a statistical model:
Hangul syllables and jamo mark Korean, ASCII letters mark English.

Examples:
    >>> detector = LanguageDetector()
    >>> detector.detect("디지털 정부 서비스").language
    'ko'
    >>> detector.detect("KRDS 디자인 시스템").language
    'ko-en'
    >>> detector.detect("12345").language
    'unknown'
"""

import logging
import re
from dataclasses import dataclass

from govcrawl.services.models import Language

# Hangul compatibility jamo (ㄱ-ㅎ, ㅏ-ㅣ) and precomposed syllables (가-힣)
HANGUL_PATTERN = re.compile(r"[ㄱ-ㅎㅏ-ㅣ가-힣]")
LATIN_PATTERN = re.compile(r"[a-zA-Z]")


@dataclass
class LanguageResult:
    """Result of language classification.

    Attributes:
        language: Classified language
        hangul_ratio: Share of Hangul among Hangul + Latin letters (0.0-1.0)
    """

    language: Language
    hangul_ratio: float


class LanguageDetector:
    """Unicode-range language classifier.

    Fail-open: any unexpected error yields ``unknown`` instead of raising.

    Attributes:
        min_text_length: Text shorter than this (after stripping) is unknown
    """

    def __init__(self, min_text_length: int = 1) -> None:
        self.min_text_length = min_text_length
        self._logger = logging.getLogger(__name__)

    def detect(self, text: str) -> LanguageResult:
        """Classify text as ko, ko-en, en or unknown.

        Args:
            text: Page or document text

        Returns:
            LanguageResult; ``unknown`` for empty, short or letterless text
        """
        if not text or len(text.strip()) < self.min_text_length:
            return LanguageResult(language=Language.UNKNOWN, hangul_ratio=0.0)

        try:
            hangul = len(HANGUL_PATTERN.findall(text))
            latin = len(LATIN_PATTERN.findall(text))
        except (TypeError, re.error) as e:
            self._logger.warning(
                f"Language detection failed: {type(e).__name__}: {e}",
                extra={"fallback": Language.UNKNOWN.value, "text_length": len(text)},
            )
            return LanguageResult(language=Language.UNKNOWN, hangul_ratio=0.0)

        total = hangul + latin
        if total == 0:
            return LanguageResult(language=Language.UNKNOWN, hangul_ratio=0.0)

        ratio = hangul / total
        if hangul and latin:
            language = Language.KO_EN
        elif hangul:
            language = Language.KO
        else:
            language = Language.EN
        return LanguageResult(language=language, hangul_ratio=ratio)


def contains_hangul(text: str | None) -> bool:
    """Return True if text contains any Hangul character."""
    return bool(text) and HANGUL_PATTERN.search(text) is not None
