"""
Content analysis for memory records.

Turns raw text into a ContentAnalysis:
- content hash, word and character counts
- keywords (frequency, stop words removed)
- topics (category keyword substring matches)
- entities (emails, URLs, phone numbers, capitalized words)
- sentiment (negation and intensifier aware word scoring)
- language (common-English ratio)

A sub-step that fails falls back to its neutral value and is listed in
``ContentAnalysis.degraded``; only a hash/tokenize failure aborts the call.
"""

import re
import time
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import AnalysisConfig
from ..errors import ContentAnalysisError
from .vocabulary import AnalyzerVocabulary, DEFAULT_VOCABULARY

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
URL_RE = re.compile(r"https?://\S+")
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
PROPER_NOUN_RE = re.compile(r"\b[A-Z][a-z]+\b")
NON_WORD_RE = re.compile(r"[^\w\s]")

MAX_PROPER_NOUNS = 10
INTENSIFIER_WEIGHT = 1.5
ENGLISH_RATIO_THRESHOLD = 0.1
TOPIC_MATCH_THRESHOLD = 2


@dataclass
class ContentAnalysis:
    """Structured result of analyzing a piece of content."""
    record_id: str
    user_id: str
    content_hash: str
    word_count: int
    character_count: int
    keywords: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=lambda: ["general"])
    entities: List[str] = field(default_factory=list)
    sentiment_score: float = 0.0
    language: str = "unknown"
    analyzed_at: float = field(default_factory=time.time)
    degraded: List[str] = field(default_factory=list)  # sub-steps that fell back

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "content_hash": self.content_hash,
            "word_count": self.word_count,
            "character_count": self.character_count,
            "keywords": list(self.keywords),
            "topics": list(self.topics),
            "entities": list(self.entities),
            "sentiment_score": self.sentiment_score,
            "language": self.language,
            "analyzed_at": self.analyzed_at,
            "degraded": list(self.degraded),
        }


def tokenize(text: str) -> List[str]:
    """Lower-case, replace punctuation with spaces, split on whitespace."""
    return [w for w in NON_WORD_RE.sub(" ", text.lower()).split() if w]


class ContentAnalyzer:
    """Naive keyword/topic/entity/sentiment/language analysis."""

    def __init__(self, config: Optional[AnalysisConfig] = None,
                 vocabulary: AnalyzerVocabulary = DEFAULT_VOCABULARY):
        self.config = config or AnalysisConfig()
        self.vocabulary = vocabulary

    def analyze(self, content: str, record_id: str, user_id: str = "") -> ContentAnalysis:
        """
        Analyze content.

        Args:
            content: Raw text
            record_id: Memory id the analysis belongs to
            user_id: Owning user

        Returns:
            ContentAnalysis (check ``degraded`` for sub-steps that fell back)

        Raises:
            ContentAnalysisError: If hashing or tokenizing fails
        """
        try:
            content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()
        except Exception as e:
            raise ContentAnalysisError(
                f"Failed to analyze content for memory {record_id}", record_id, "hash", e
            ) from e

        try:
            words = tokenize(content)
        except Exception as e:
            raise ContentAnalysisError(
                f"Failed to analyze content for memory {record_id}", record_id, "tokenize", e
            ) from e

        analysis = ContentAnalysis(
            record_id=record_id,
            user_id=user_id,
            content_hash=content_hash,
            word_count=len(words),
            character_count=len(content),
        )

        analysis.keywords = self._run(analysis, "keywords", self.extract_keywords, [], words)
        analysis.topics = self._run(analysis, "topics", self.classify_topics, ["general"], content.lower())
        if self.config.enable_entity_extraction:
            analysis.entities = self._run(analysis, "entities", self.extract_entities, [], content)
        if self.config.enable_sentiment_analysis:
            analysis.sentiment_score = self._run(analysis, "sentiment", self.analyze_sentiment, 0.0, words)
        analysis.language = self._run(analysis, "language", self.detect_language, "unknown", words)

        return analysis

    def _run(self, analysis: ContentAnalysis, stage: str, step, fallback, *args):
        try:
            return step(*args)
        except Exception as e:
            logger.warning(f"Content analysis step '{stage}' failed for {analysis.record_id}: {e}")
            analysis.degraded.append(stage)
            return fallback

    def extract_keywords(self, words: List[str]) -> List[str]:
        """Top keywords by frequency; ties keep first-occurrence order."""
        freq: Dict[str, int] = {}
        for word in words:
            if word not in self.vocabulary.stop_words and len(word) > 2:
                freq[word] = freq.get(word, 0) + 1

        # sorted() is stable, so equal counts stay in insertion order
        ranked = sorted(freq.items(), key=lambda item: -item[1])
        return [word for word, _ in ranked[:self.config.max_keywords]]

    def classify_topics(self, lowered_content: str) -> List[str]:
        topics = []
        for topic, keywords in self.vocabulary.topic_keywords:
            matches = sum(1 for keyword in keywords if keyword.lower() in lowered_content)
            if matches >= TOPIC_MATCH_THRESHOLD:
                topics.append(topic)
        return topics or ["general"]

    def extract_entities(self, content: str) -> List[str]:
        entities = []
        entities.extend(EMAIL_RE.findall(content))
        entities.extend(URL_RE.findall(content))
        entities.extend(PHONE_RE.findall(content))

        proper_nouns = [
            word for word in PROPER_NOUN_RE.findall(content)
            if word not in self.vocabulary.common_capitalized
        ]
        entities.extend(proper_nouns[:MAX_PROPER_NOUNS])

        return list(dict.fromkeys(entities))

    def analyze_sentiment(self, words: List[str]) -> float:
        """Score in [-1, 1]; 0 for empty input."""
        vocab = self.vocabulary
        score = 0.0
        intensity = 1.0
        negate = False

        for word in words:
            if word in vocab.negators:
                negate = True
                continue
            if word in vocab.intensifiers:
                intensity = INTENSIFIER_WEIGHT
                continue

            if word in vocab.positive:
                score += -intensity if negate else intensity
            elif word in vocab.negative:
                score += intensity if negate else -intensity
            else:
                continue

            negate = False
            intensity = 1.0

        max_score = len(words) * INTENSIFIER_WEIGHT
        if max_score <= 0:
            return 0.0
        return max(-1.0, min(1.0, score / max_score))

    def detect_language(self, words: List[str]) -> str:
        if not words:
            return "unknown"
        english = sum(1 for word in words if word in self.vocabulary.common_english)
        return "en" if english / len(words) > ENGLISH_RATIO_THRESHOLD else "unknown"
