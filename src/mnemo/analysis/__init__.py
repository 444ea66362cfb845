from .analyzer import ContentAnalyzer, ContentAnalysis, tokenize
from .vocabulary import AnalyzerVocabulary, DEFAULT_VOCABULARY

__all__ = ["ContentAnalyzer", "ContentAnalysis", "tokenize", "AnalyzerVocabulary", "DEFAULT_VOCABULARY"]
