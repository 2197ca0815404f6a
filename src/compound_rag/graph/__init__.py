"""Document link graph: incremental updates, bounded traversal and cycle detection."""

from .link_graph import (
    DocumentLinkGraph,
    DocumentRelationship,
    GraphSnapshot,
    Link,
    LinkGraph,
    LinkUpdateResult,
    RelationshipType,
    TraversalHit,
)
from .rwlock import ReadWriteLock

__all__ = [
    "DocumentLinkGraph",
    "DocumentRelationship",
    "GraphSnapshot",
    "Link",
    "LinkGraph",
    "LinkUpdateResult",
    "ReadWriteLock",
    "RelationshipType",
    "TraversalHit",
]
