"""Centralized configuration for compound-rag."""

import os

from .errors import ConfigError


class Config:
    """
    compound-rag configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    @staticmethod
    def _parse_float(name: str, default: str) -> float:
        """Parse a float environment variable, naming the variable on failure."""
        raw = os.getenv(name, default)
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid {name} environment variable: {e}") from e

    @staticmethod
    def _parse_int(name: str, default: str) -> int:
        """Parse an int environment variable, naming the variable on failure."""
        raw = os.getenv(name, default)
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid {name} environment variable: {e}") from e

    # ========================================================================
    # Promotion Scoring
    # ========================================================================
    CRITICAL_BOOST: float = _parse_float.__func__("CRITICAL_BOOST", "0.15")
    IMPORTANT_BOOST: float = _parse_float.__func__("IMPORTANT_BOOST", "0.10")
    MAX_RELEVANCE_SCORE: float = _parse_float.__func__("MAX_RELEVANCE_SCORE", "1.0")
    OVERFETCH_FACTOR: int = _parse_int.__func__("OVERFETCH_FACTOR", "2")

    # ========================================================================
    # Supersession
    # ========================================================================
    SUPERSESSION_DECAY: float = _parse_float.__func__("SUPERSESSION_DECAY", "0.5")
    MAX_CHAIN_DEPTH: int = _parse_int.__func__("MAX_CHAIN_DEPTH", "10")
    SUPERSESSION_DB_PATH: str = os.getenv(
        "SUPERSESSION_DB_PATH", "./.compound_rag/supersession.db"
    )

    # ========================================================================
    # Default Retrieval Options (used when the resolver supplies none)
    # ========================================================================
    DEFAULT_MIN_RELEVANCE: float = _parse_float.__func__("DEFAULT_MIN_RELEVANCE", "0.7")
    DEFAULT_MAX_RESULTS: int = _parse_int.__func__("DEFAULT_MAX_RESULTS", "10")
    DEFAULT_MAX_LINKED_DOCS: int = _parse_int.__func__("DEFAULT_MAX_LINKED_DOCS", "5")
    DEFAULT_MAX_LINK_DEPTH: int = _parse_int.__func__("DEFAULT_MAX_LINK_DEPTH", "2")

    # ========================================================================
    # Qdrant Configuration
    # ========================================================================
    QDRANT_URL: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    QDRANT_API_KEY: str | None = os.getenv("QDRANT_API_KEY") or None
    QDRANT_COLLECTION: str = os.getenv("QDRANT_COLLECTION", "compound_documents")
    QDRANT_TIMEOUT: int = _parse_int.__func__("QDRANT_TIMEOUT", "30")

    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - Boosts are within [0, 1]
        - Supersession decay is within (0, 1]
        - Depth/count limits are positive

        Returns:
            True if validation passes

        Raises:
            ConfigError: If validation fails
        """
        errors = []

        for name in ("CRITICAL_BOOST", "IMPORTANT_BOOST"):
            value = getattr(cls, name)
            if not (0.0 <= value <= 1.0):
                errors.append(f"{name} must be within [0, 1], got {value}")

        if cls.IMPORTANT_BOOST > cls.CRITICAL_BOOST:
            errors.append(
                f"IMPORTANT_BOOST ({cls.IMPORTANT_BOOST}) must not exceed "
                f"CRITICAL_BOOST ({cls.CRITICAL_BOOST})"
            )

        if not (0.0 < cls.MAX_RELEVANCE_SCORE <= 1.0):
            errors.append(
                f"MAX_RELEVANCE_SCORE must be within (0, 1], got {cls.MAX_RELEVANCE_SCORE}"
            )

        if cls.OVERFETCH_FACTOR < 1:
            errors.append(f"OVERFETCH_FACTOR must be >= 1, got {cls.OVERFETCH_FACTOR}")

        if not (0.0 < cls.SUPERSESSION_DECAY <= 1.0):
            errors.append(
                f"SUPERSESSION_DECAY must be within (0, 1], got {cls.SUPERSESSION_DECAY}"
            )

        if cls.MAX_CHAIN_DEPTH <= 0:
            errors.append(f"MAX_CHAIN_DEPTH must be > 0, got {cls.MAX_CHAIN_DEPTH}")

        if not (0.0 <= cls.DEFAULT_MIN_RELEVANCE <= 1.0):
            errors.append(
                f"DEFAULT_MIN_RELEVANCE must be within [0, 1], got {cls.DEFAULT_MIN_RELEVANCE}"
            )
        if cls.DEFAULT_MAX_RESULTS < 1:
            errors.append(f"DEFAULT_MAX_RESULTS must be >= 1, got {cls.DEFAULT_MAX_RESULTS}")
        if cls.DEFAULT_MAX_LINKED_DOCS < 0:
            errors.append(
                f"DEFAULT_MAX_LINKED_DOCS must be >= 0, got {cls.DEFAULT_MAX_LINKED_DOCS}"
            )
        if cls.DEFAULT_MAX_LINK_DEPTH < 0:
            errors.append(
                f"DEFAULT_MAX_LINK_DEPTH must be >= 0, got {cls.DEFAULT_MAX_LINK_DEPTH}"
            )

        if cls.QDRANT_TIMEOUT <= 0:
            errors.append(f"QDRANT_TIMEOUT must be > 0, got {cls.QDRANT_TIMEOUT}")

        if errors:
            raise ConfigError(f"Config validation failed: {'; '.join(errors)}")

        return True
