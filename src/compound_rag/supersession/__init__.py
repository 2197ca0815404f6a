"""Supersession chains: durable relationships, walks, multipliers and repair."""

from .models import (
    ChainEntry,
    ChainIssue,
    ChainIssueKind,
    RegistrationResult,
    RemovalResult,
    SupersessionInfo,
    SupersessionRelationship,
)
from .repository import InMemorySupersessionRepository, SupersessionRepository
from .sqlite_repository import SqliteSupersessionRepository
from .tracker import SupersessionTracker

__all__ = [
    "ChainEntry",
    "ChainIssue",
    "ChainIssueKind",
    "InMemorySupersessionRepository",
    "RegistrationResult",
    "RemovalResult",
    "SqliteSupersessionRepository",
    "SupersessionInfo",
    "SupersessionRelationship",
    "SupersessionRepository",
    "SupersessionTracker",
]
