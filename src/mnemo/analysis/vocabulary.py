"""
Vocabulary tables for content analysis.

The tables are immutable and built once at import; pass a different
AnalyzerVocabulary to ContentAnalyzer to localize or override them.
"""

from dataclasses import dataclass
from typing import FrozenSet, Tuple

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "from", "up", "about", "into", "through", "during", "before", "after",
    "above", "below", "between", "among", "this", "that", "these", "those", "i",
    "me", "we", "you", "he", "she", "it", "they", "them", "his", "her", "its",
    "our", "your", "their", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "can", "shall", "am", "not", "no", "yes",
})

# Ordered: topics are reported in this order
TOPIC_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("technology", (
        "programming", "code", "software", "development", "algorithm", "database", "api",
        "framework", "library", "tech", "computer", "system", "web", "app", "mobile", "cloud",
        "ai", "ml", "machine learning", "artificial intelligence", "typescript", "javascript",
        "python", "rust", "java",
    )),
    ("business", (
        "business", "company", "market", "sales", "revenue", "profit", "customer", "client",
        "strategy", "growth", "finance", "investment", "startup", "enterprise", "corporate",
        "management", "leadership", "team", "meeting", "project", "budget", "roi",
    )),
    ("research", (
        "research", "study", "analysis", "data", "experiment", "hypothesis", "theory",
        "findings", "results", "methodology", "academic", "paper", "publication", "journal",
        "science", "scientific", "investigation", "observation", "survey", "statistics",
    )),
    ("personal", (
        "personal", "family", "friend", "life", "home", "health", "hobby", "travel", "food",
        "music", "movie", "book", "game", "sport", "exercise", "vacation", "weekend",
        "birthday", "celebration", "memories",
    )),
    ("education", (
        "education", "school", "university", "college", "course", "class", "teacher",
        "student", "learn", "study", "exam", "assignment", "homework", "lecture", "tutorial",
        "degree", "certificate", "knowledge", "training",
    )),
    ("health", (
        "health", "medical", "doctor", "hospital", "medicine", "treatment", "therapy",
        "wellness", "fitness", "exercise", "diet", "nutrition", "mental health", "psychology",
        "symptoms", "diagnosis",
    )),
    ("finance", (
        "money", "finance", "banking", "investment", "stock", "crypto", "currency", "budget",
        "savings", "loan", "credit", "debt", "tax", "portfolio", "trading", "economics",
    )),
)

POSITIVE_WORDS = frozenset({
    "good", "great", "excellent", "amazing", "wonderful", "fantastic", "awesome", "love",
    "like", "enjoy", "happy", "excited", "pleased", "satisfied", "success", "successful",
    "win", "won", "achievement", "accomplish", "complete", "finish", "solve", "fix",
    "improve", "better", "best", "perfect", "outstanding", "brilliant", "positive",
    "optimistic",
})

NEGATIVE_WORDS = frozenset({
    "bad", "terrible", "awful", "horrible", "hate", "dislike", "sad", "angry", "frustrated",
    "disappointed", "fail", "failed", "failure", "problem", "issue", "bug", "error",
    "mistake", "wrong", "broken", "difficult", "hard", "impossible", "worst", "worse",
    "ugly", "slow", "annoying", "negative", "pessimistic",
})

INTENSIFIERS = frozenset({
    "very", "extremely", "incredibly", "really", "quite", "absolutely", "completely",
    "totally", "definitely", "certainly", "highly", "deeply", "truly",
})

# tokenize splits "don't" into "don" + "t", so contractions are listed by
# their stem; "can" and "won" are ordinary words and stay out
NEGATORS = frozenset({
    "not", "never", "no", "none", "nothing", "neither", "nowhere", "nobody",
    "cannot", "don", "doesn", "didn", "isn", "aren", "wasn", "weren", "shouldn",
    "wouldn", "couldn", "dont", "wont", "cant", "shouldnt",
})

# Capitalized words that are usually sentence starters, not proper nouns
COMMON_CAPITALIZED = frozenset({
    "The", "This", "That", "These", "Those", "A", "An", "I", "We", "You", "He", "She",
    "It", "They", "When", "Where", "What", "How", "Why",
})

COMMON_ENGLISH = frozenset({
    "the", "and", "or", "but", "is", "are", "was", "were", "a", "an", "in", "on", "at",
    "to", "for", "of", "with", "by",
})


@dataclass(frozen=True)
class AnalyzerVocabulary:
    """Immutable word tables used by ContentAnalyzer."""
    stop_words: FrozenSet[str] = STOP_WORDS
    topic_keywords: Tuple[Tuple[str, Tuple[str, ...]], ...] = TOPIC_KEYWORDS
    positive: FrozenSet[str] = POSITIVE_WORDS
    negative: FrozenSet[str] = NEGATIVE_WORDS
    intensifiers: FrozenSet[str] = INTENSIFIERS
    negators: FrozenSet[str] = NEGATORS
    common_capitalized: FrozenSet[str] = COMMON_CAPITALIZED
    common_english: FrozenSet[str] = COMMON_ENGLISH


DEFAULT_VOCABULARY = AnalyzerVocabulary()
