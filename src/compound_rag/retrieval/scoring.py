"""
Promotion and supersession scoring rules.

All tunable constants live in ScoringConfig; call sites never use literals.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from ..config import Config
from ..errors import ConfigError
from ..models import PromotionLevel


@dataclass(frozen=True)
class ScoringConfig:
    """
    Named scoring constants.

    Attributes:
        critical_boost: Added to the raw score of critical documents
        important_boost: Added to the raw score of important documents
        max_relevance_score: Upper clamp for boosted scores
        overfetch_factor: Vector-store over-fetch multiplier
        supersession_decay: Per-position multiplier for superseded versions
        max_chain_depth: Hard cap on supersession chain walks
    """

    critical_boost: float = 0.15
    important_boost: float = 0.10
    max_relevance_score: float = 1.0
    overfetch_factor: int = 2
    supersession_decay: float = 0.5
    max_chain_depth: int = 10

    def __post_init__(self):
        errors = []
        for name in ("critical_boost", "important_boost"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                errors.append(f"{name} must be within [0, 1], got {value}")
        if not (0.0 < self.max_relevance_score <= 1.0):
            errors.append(
                f"max_relevance_score must be within (0, 1], got {self.max_relevance_score}"
            )
        if self.overfetch_factor < 1:
            errors.append(f"overfetch_factor must be >= 1, got {self.overfetch_factor}")
        if not (0.0 < self.supersession_decay <= 1.0):
            errors.append(
                f"supersession_decay must be within (0, 1], got {self.supersession_decay}"
            )
        if self.max_chain_depth <= 0:
            errors.append(f"max_chain_depth must be > 0, got {self.max_chain_depth}")
        if errors:
            raise ConfigError(f"Scoring config validation failed: {'; '.join(errors)}")

    @classmethod
    def from_config(cls) -> "ScoringConfig":
        """Build from the environment-backed Config class."""
        return cls(
            critical_boost=Config.CRITICAL_BOOST,
            important_boost=Config.IMPORTANT_BOOST,
            max_relevance_score=Config.MAX_RELEVANCE_SCORE,
            overfetch_factor=Config.OVERFETCH_FACTOR,
            supersession_decay=Config.SUPERSESSION_DECAY,
            max_chain_depth=Config.MAX_CHAIN_DEPTH,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "ScoringConfig":
        """
        Load scoring overrides from a YAML file.

        The file holds a ``scoring`` mapping (or a bare mapping) whose keys
        are ScoringConfig field names. Missing keys keep Config defaults.

        Args:
            yaml_path: Path to the YAML file

        Returns:
            Validated ScoringConfig

        Raises:
            FileNotFoundError: If the YAML file doesn't exist
            ConfigError: If the structure or a value is invalid
        """
        yaml_file = Path(yaml_path)
        if not yaml_file.exists():
            raise FileNotFoundError(f"Scoring YAML not found: {yaml_path}")

        with open(yaml_file) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed scoring YAML {yaml_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"Invalid YAML structure: expected dict, got {type(data).__name__}"
            )
        if "scoring" in data:
            data = data["scoring"]
            if not isinstance(data, dict):
                raise ConfigError("'scoring' must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown scoring keys: {', '.join(unknown)}")

        base = cls.from_config()
        values: dict[str, Any] = {name: getattr(base, name) for name in known}
        values.update(data)
        return cls(**values)

    def boost_for(self, level: PromotionLevel) -> float:
        if level is PromotionLevel.CRITICAL:
            return self.critical_boost
        if level is PromotionLevel.IMPORTANT:
            return self.important_boost
        return 0.0


def parse_promotion_level(raw: Any, path: str | None = None) -> PromotionLevel:
    """
    Parse a stored promotion tag, defaulting to standard.

    Missing and malformed tags are both logged as a warning.
    """
    level = PromotionLevel.from_tag(raw)
    if level is not None:
        return level
    if raw is None or raw == "":
        logger.warning(f"Missing promotion level on {path or '<unknown>'}; treating as standard")
    else:
        logger.warning(
            f"Unknown promotion level {raw!r} on {path or '<unknown>'}; treating as standard"
        )
    return PromotionLevel.STANDARD


def apply_boost(
    raw_score: float, level: PromotionLevel, scoring: ScoringConfig
) -> float:
    """Return ``min(max_relevance_score, raw + boost(level))``."""
    return min(scoring.max_relevance_score, raw_score + scoring.boost_for(level))


def supersession_multiplier(chain_position: int, scoring: ScoringConfig) -> float:
    """
    Multiplier for a document ``chain_position`` hops behind the current version.

    Position 0 (the current version) is 1.0; each older position decays.
    """
    if chain_position <= 0:
        return 1.0
    return scoring.supersession_decay**chain_position
