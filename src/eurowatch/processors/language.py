"""Speech language detection restricted to the 24 official EU languages."""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from fast_langdetect import detect_multilingual
from langdetect import DetectorFactory
from langdetect.detector_factory import PROFILES_DIRECTORY
from langdetect.lang_detect_exception import LangDetectException

from ..config import LanguageConfig
from .cleaner import normalize_whitespace

EU_LANGUAGES = (
    "BG", "CS", "DA", "DE", "EL", "EN", "ES", "ET", "FI", "FR", "GA", "HR",
    "HU", "IT", "LT", "LV", "MT", "NL", "PL", "PT", "RO", "SK", "SL", "SV",
)
EU_LANGUAGE_SET = frozenset(EU_LANGUAGES)

_TAG_RE = re.compile(r"<[^>]+>")
_GREEK_RE = re.compile("[\u0370-\u03ff]")
_CYRILLIC_RE = re.compile("[\u0400-\u04ff]")

Backend = Callable[[str], Sequence[tuple[str, float]]]


@dataclass(frozen=True)
class LanguageDecision:
    code: str
    confidence: float
    via: str


class FastTextBackend:
    """Ranked ``(code, probability)`` guesses from fastText's lid.176 model.

    fast-langdetect bundles the compressed model, which profiles every
    EU language including Irish and Maltese, so no download is needed.
    """

    def __init__(self, k: int = 5):
        self.k = k

    def __call__(self, text: str) -> list[tuple[str, float]]:
        # fastText predicts one line at a time
        line = text.replace("\n", " ").strip()
        if not line:
            return []
        return [
            (guess["lang"], float(guess["score"]))
            for guess in detect_multilingual(line, low_memory=True, k=self.k)
        ]


class LangdetectBackend:
    """Ranked ``(code, probability)`` guesses from a private langdetect factory.

    With ``restrict_to`` the detector's prior is zero for every other
    language, so it can only answer with one of them.
    """

    def __init__(self, seed: int = 0, restrict_to: Optional[Sequence[str]] = None):
        self.seed = seed
        self.restrict_to = restrict_to
        self._factory: Optional[DetectorFactory] = None
        self._prior: Optional[dict[str, float]] = None

    def _load(self) -> DetectorFactory:
        if self._factory is None:
            factory = DetectorFactory()
            factory.load_profile(PROFILES_DIRECTORY)
            factory.seed = self.seed
            if self.restrict_to is not None:
                wanted = {code.lower() for code in self.restrict_to}
                self._prior = {lang: 1.0 for lang in factory.get_lang_list() if lang in wanted}
            self._factory = factory
        return self._factory

    def __call__(self, text: str) -> list[tuple[str, float]]:
        detector = self._load().create()
        if self._prior:
            detector.set_prior_map(self._prior)
        detector.append(text)
        try:
            return [(lang.lang, lang.prob) for lang in detector.get_probabilities()]
        except LangDetectException:
            return []


def clean_text(text: Optional[str]) -> str:
    """Drop tags and collapse whitespace."""
    if not text:
        return ""
    return normalize_whitespace(_TAG_RE.sub(" ", str(text)))


def to_eu_code(code: Optional[str]) -> Optional[str]:
    """Two-letter uppercase EU language code, or None for anything else."""
    if not code:
        return None
    iso2 = code.split("-")[0].upper()
    return iso2 if iso2 in EU_LANGUAGE_SET else None


class LanguageDetector:
    """Script heuristic, fastText single shot and chunk vote, restricted fallback."""

    def __init__(
        self,
        settings: Optional[LanguageConfig] = None,
        primary: Optional[Backend] = None,
        fallback: Optional[Backend] = None,
    ):
        self.settings = settings or LanguageConfig()
        self.primary = primary or FastTextBackend()
        self.fallback = fallback or LangdetectBackend(seed=self.settings.seed, restrict_to=EU_LANGUAGES)

    def script_heuristic(self, text: str) -> Optional[LanguageDecision]:
        """Greek or Cyrillic script dominance decides without any model."""
        total = len(re.sub(r"\s", "", text))
        if total < self.settings.script_min_chars:
            return None
        greek = len(_GREEK_RE.findall(text))
        if greek and greek / total >= self.settings.script_ratio:
            return LanguageDecision("EL", 0.999, "script")
        cyrillic = len(_CYRILLIC_RE.findall(text))
        if cyrillic and cyrillic / total >= self.settings.script_ratio:
            return LanguageDecision("BG", 0.995, "script")
        return None

    def _single(self, text: str) -> Optional[LanguageDecision]:
        ranked = self.primary(text)
        if not ranked:
            return None
        code, probability = ranked[0]
        iso2 = to_eu_code(code)
        if iso2 is None:
            return None
        via = "fasttext" if probability >= self.settings.min_probability else "fasttext-weak"
        return LanguageDecision(iso2, probability, via)

    def _chunks(self, text: str) -> list[str]:
        text = text[: self.settings.max_text_length]
        size = self.settings.chunk_size
        return [text[i: i + size] for i in range(0, len(text), size)]

    def _vote(self, text: str) -> Optional[LanguageDecision]:
        scores: dict[str, float] = {}
        counts: Counter = Counter()
        for chunk in self._chunks(text):
            guess = self._single(chunk)
            if guess is None:
                continue
            scores[guess.code] = scores.get(guess.code, 0.0) + (guess.confidence or 0.5)
            counts[guess.code] += 1
        if not scores:
            return None
        best = max(scores, key=lambda code: scores[code] / counts[code])
        return LanguageDecision(best, scores[best] / counts[best], "fasttext-vote")

    def _fallback(self, text: str) -> Optional[LanguageDecision]:
        if len(text) < self.settings.script_min_chars:
            return None
        ranked = self.fallback(text)
        if not ranked:
            return None
        iso2 = to_eu_code(ranked[0][0])
        if iso2 is None:
            return None
        return LanguageDecision(iso2, self.settings.fallback_confidence, "fallback")

    def detect(self, raw: Optional[str]) -> Optional[LanguageDecision]:
        """Decide the language of a speech.

        Returns:
            The decision, or None when no detector produced an EU language
        """
        text = clean_text(raw)
        if not text:
            return None

        script = self.script_heuristic(text)
        if script:
            return script

        single = self._single(text)
        if single and single.confidence >= self.settings.min_probability:
            return single

        vote = self._vote(text)
        if vote and vote.confidence >= self.settings.vote_threshold:
            return vote

        fallback = self._fallback(text)
        # Single shot and vote come from the same model and count as one opinion
        preferred = vote or single
        if preferred is None:
            return fallback
        if fallback is None:
            # A weak guess nothing else confirms stays undecided
            return None
        if fallback.code == preferred.code:
            return preferred
        if fallback.code in ("EL", "MT") and preferred.confidence < self.settings.nudge_threshold:
            return fallback
        return preferred

    def detect_code(self, raw: Optional[str]) -> Optional[str]:
        decision = self.detect(raw)
        return decision.code if decision else None
