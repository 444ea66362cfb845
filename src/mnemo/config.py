"""
Configuration management for Mnemo.

Settings live in ``config.yaml`` under the base path. Missing keys fall back
to defaults; a few environment variables override the file:

- MNEMO_BASE_PATH: base directory (default: ~/.mnemo)
- MNEMO_DB_PATH: SQLite database path
- MNEMO_LOG_LEVEL: logging level
- MNEMO_EMBEDDING_PROVIDER: hashing | ollama
"""

import os
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BASE_PATH = Path.home() / ".mnemo"
CONFIG_FILENAME = "config.yaml"
DB_FILENAME = "memory.sqlite"

EMBEDDING_PROVIDERS = {"hashing", "ollama"}


@dataclass
class StorageConfig:
    """Database gateway settings."""
    db_path: Optional[str] = None
    enable_wal: bool = True


@dataclass
class EmbeddingConfig:
    """Similarity oracle embedder settings."""
    provider: str = "hashing"
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    dim: int = 256


@dataclass
class AnalysisConfig:
    """Content analyzer settings."""
    max_keywords: int = 10
    enable_sentiment_analysis: bool = True
    enable_entity_extraction: bool = True


@dataclass
class EngineConfig:
    """Memory record engine settings."""
    auto_link_threshold: float = 0.8
    auto_link_limit: int = 5
    default_similarity_threshold: float = 0.7
    fallback_concept_limit: int = 5
    default_concept_type: str = "topic"
    default_concept_confidence: float = 0.8
    analyze_on_store: bool = False
    # Topic, tag and temporal links on store
    detect_relationships: bool = False
    detection_candidate_threshold: float = 0.3
    detection_candidate_limit: int = 50
    topic_overlap_strength: float = 0.8
    tag_similarity_threshold: float = 0.3
    temporal_window_hours: float = 24.0
    max_relationships_per_memory: int = 20


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class MnemoConfig:
    """Main application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def resolve_db_path(self, base_path: Path) -> Path:
        """Database path from config, relative paths resolved against base_path."""
        if not self.storage.db_path:
            return Path(base_path) / DB_FILENAME
        path = Path(self.storage.db_path).expanduser()
        return path if path.is_absolute() else Path(base_path) / path


def get_base_path(data_dir: Optional[Path] = None) -> Path:
    """
    Get the base path for Mnemo data.

    Priority: explicit data_dir > MNEMO_BASE_PATH env var > default path.
    """
    if data_dir:
        return Path(data_dir)
    env_path = os.getenv("MNEMO_BASE_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


def _section(data: Dict[str, Any], name: str, cls):
    """Build a config section dataclass, ignoring unknown keys."""
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    known = {k: v for k, v in raw.items() if k in cls.__dataclass_fields__}
    unknown = set(raw) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{name}' config: {sorted(unknown)}")
    return cls(**known)


def config_from_dict(data: Dict[str, Any]) -> MnemoConfig:
    """Build MnemoConfig from a parsed YAML mapping."""
    config = MnemoConfig(
        storage=_section(data, "storage", StorageConfig),
        embedding=_section(data, "embedding", EmbeddingConfig),
        analysis=_section(data, "analysis", AnalysisConfig),
        engine=_section(data, "engine", EngineConfig),
        logging=_section(data, "logging", LoggingConfig),
    )
    if config.embedding.provider not in EMBEDDING_PROVIDERS:
        raise ValueError(
            f"Invalid embedding.provider: {config.embedding.provider}. "
            f"Must be one of: {EMBEDDING_PROVIDERS}"
        )
    return config


def _apply_env_overrides(config: MnemoConfig) -> MnemoConfig:
    if os.getenv("MNEMO_DB_PATH"):
        config.storage.db_path = os.getenv("MNEMO_DB_PATH")
    if os.getenv("MNEMO_LOG_LEVEL"):
        config.logging.level = os.getenv("MNEMO_LOG_LEVEL")
    provider = os.getenv("MNEMO_EMBEDDING_PROVIDER")
    if provider:
        if provider not in EMBEDDING_PROVIDERS:
            raise ValueError(f"Invalid MNEMO_EMBEDDING_PROVIDER: {provider}")
        config.embedding.provider = provider
    return config


def load_config(config_path: Optional[Path] = None) -> MnemoConfig:
    """
    Load configuration from YAML with environment overrides.

    Args:
        config_path: Path to config.yaml (default: <base path>/config.yaml)

    Returns:
        MnemoConfig instance (defaults when the file does not exist)
    """
    path = Path(config_path) if config_path else get_base_path() / CONFIG_FILENAME

    if path.exists():
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        config = config_from_dict(data)
        logger.debug(f"Configuration loaded: {path}")
    else:
        logger.debug(f"Config file not found: {path}, using defaults")
        config = MnemoConfig()

    return _apply_env_overrides(config)


def save_config(config: MnemoConfig, config_path: Path) -> None:
    """Write configuration to YAML."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
