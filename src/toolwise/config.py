"""Configuration management for Toolwise using Pydantic settings.

This module handles all configuration for the learning engine, loading from
environment variables and .env files with sensible defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main configuration settings for Toolwise.

    Settings are loaded from environment variables and .env files.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    toolwise_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )
    toolwise_log_file: Path | None = Field(
        default=None,
        description="Optional file path to write logs (defaults to console only)",
    )
    toolwise_data_dir: Path = Field(
        default=Path("./data"),
        description="Base directory for all local data storage",
    )

    # Vector Store Configuration
    chroma_path: Path | None = Field(
        default=None,
        description="Path to ChromaDB storage (auto-generated in data_dir if not set)",
    )
    chroma_collection: str = Field(
        default="toolwise_experiences",
        description="ChromaDB collection name for recorded experiences",
    )

    # Embedding Configuration
    embedding_provider: Literal["ollama", "sentence-transformers"] = Field(
        default="ollama",
        description="Backend used to embed experience text for semantic search",
    )
    embedding_model: str | None = Field(
        default=None,
        description="Embedding model name (provider default if not set)",
    )
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL used for embeddings",
    )

    # Tool Selector Settings
    selector_exploration_rate: float = Field(
        default=0.1,
        description="Probability of picking a random tool instead of the learned best",
        ge=0.0,
        le=1.0,
    )
    selector_min_confidence: float = Field(
        default=0.6,
        description="Minimum composite score before a learned recommendation is trusted",
        ge=0.0,
        le=1.0,
    )
    selector_min_sample_size: int = Field(
        default=3,
        description="Minimum experiences a tool needs before it can be recommended",
        ge=1,
    )
    selector_seed: int | None = Field(
        default=None,
        description="Seed for the selector's random source (random if not set)",
    )

    # Error Analyzer Settings
    analyzer_min_cluster_size: int = Field(
        default=3,
        description="Minimum failed experiences needed to mint an error pattern",
        ge=1,
    )
    analyzer_similarity_threshold: float = Field(
        default=0.75,
        description="Minimum match score to attach a failure to a pattern",
        ge=0.0,
        le=1.0,
    )
    analyzer_min_confidence: float = Field(
        default=0.6,
        description="Patterns below this confidence are not surfaced",
        ge=0.0,
        le=1.0,
    )
    analyzer_max_patterns: int = Field(
        default=100,
        description="Maximum number of retained error patterns",
        ge=1,
    )
    analyzer_query_weight: float = Field(
        default=0.6,
        description="Weight of query text in pattern matching (rest is error message overlap)",
        ge=0.0,
        le=1.0,
    )
    analyzer_rescan_interval: int = Field(
        default=300,
        description="Seconds before cached patterns are rescanned from the store",
        ge=0,
    )

    @field_validator("toolwise_data_dir", "toolwise_log_file", "chroma_path", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand relative paths to absolute paths."""
        if v is None:
            return None
        path = Path(v)
        return path.expanduser().resolve()

    @field_validator("chroma_path", mode="after")
    @classmethod
    def set_default_chroma_path(cls, v: Path | None, info) -> Path:
        """Set default ChromaDB path if not specified."""
        if v is None:
            data_dir = info.data.get("toolwise_data_dir", Path("./data"))
            return data_dir / "chroma"
        return v

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        directories = [
            self.toolwise_data_dir,
            self.toolwise_data_dir / "logs",
            self.chroma_path,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def log_file_path(self) -> Path:
        """Get the path to the main log file."""
        return self.toolwise_data_dir / "logs" / "toolwise.log"

    def model_dump_safe(self) -> dict[str, str]:
        """Dump settings as a dictionary with safe string representations.

        Useful for logging configuration without exposing sensitive data.
        """
        return {
            "log_level": self.toolwise_log_level,
            "data_dir": str(self.toolwise_data_dir),
            "chroma_path": str(self.chroma_path),
            "chroma_collection": self.chroma_collection,
            "embedding_provider": self.embedding_provider,
            "embedding_model": self.embedding_model or "(provider default)",
            "ollama_host": self.ollama_host,
            "exploration_rate": str(self.selector_exploration_rate),
            "min_confidence": str(self.selector_min_confidence),
            "min_sample_size": str(self.selector_min_sample_size),
            "min_cluster_size": str(self.analyzer_min_cluster_size),
            "similarity_threshold": str(self.analyzer_similarity_threshold),
            "max_patterns": str(self.analyzer_max_patterns),
        }


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches the settings on first call.
    Ensures all required directories exist.

    Returns:
        Settings: The global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment/files.

    Useful for testing or when configuration changes at runtime.

    Returns:
        Settings: The newly loaded settings instance
    """
    global _settings
    _settings = Settings()
    _settings.ensure_directories()
    return _settings
