"""
In-memory directed graph of document links.

Vertices are relative document paths; an edge (source, target) means the
source document links to the target. Vertices for documents that are not
indexed yet (dangling link targets) are legal and are pruned once nothing
links to them.

Storage is a pair of adjacency dicts (outgoing and incoming) whose values
are insertion-ordered dicts from neighbour to relationship type, so
traversal order is deterministic and follows link order inside each
document. One reader/writer lock guards both indexes.
"""

from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from ..cancellation import CancelEvent, raise_if_cancelled
from .rwlock import ReadWriteLock


@dataclass(frozen=True)
class TraversalHit:
    """A vertex reached by bounded traversal, at the level of first discovery."""

    path: str
    depth: int
    referring_path: str


@dataclass
class LinkUpdateResult:
    """
    Outcome of replacing a document's outgoing links.

    ``cycle_targets`` lists new targets whose edge closed a cycle; such
    edges are kept (links are never blocked) and only reported.
    """

    path: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    cycle_targets: list[str] = field(default_factory=list)

    @property
    def created_cycle(self) -> bool:
        return bool(self.cycle_targets)


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable copy of the vertex and edge sets."""

    vertices: frozenset[str]
    edges: frozenset[tuple[str, str]]


class RelationshipType(str, Enum):
    """Kind of a link; plain links are REFERENCES."""

    REFERENCES = "references"
    PARENT = "parent"  # source is the parent of target
    CHILD = "child"  # source is a child of target
    RELATED = "related"
    SUPERSEDES = "supersedes"
    DEPENDS_ON = "depends_on"


@dataclass(frozen=True)
class DocumentRelationship:
    """A typed edge between two documents."""

    source: str
    target: str
    relationship_type: RelationshipType = RelationshipType.REFERENCES


# A link is either a bare target path or a (target, relationship type) pair.
Link = str | tuple[str, RelationshipType]


def _normalize_links(path: str, links: Iterable[Link]) -> dict[str, RelationshipType]:
    """Ordered target -> type map without empty targets or self-links; first mention wins."""
    wanted: dict[str, RelationshipType] = {}
    for link in links:
        if isinstance(link, str):
            target, kind = link, RelationshipType.REFERENCES
        else:
            target, kind = link[0], RelationshipType(link[1])
        if not target:
            continue
        if target == path:
            logger.debug(f"Ignoring self-link on {path}")
            continue
        wanted.setdefault(target, kind)
    return wanted


class LinkGraph(ABC):
    """Link graph interface; the in-memory implementation can be swapped for a persisted one."""

    @abstractmethod
    def add_vertex(self, path: str) -> bool: ...

    @abstractmethod
    def remove_vertex(self, path: str) -> bool: ...

    @abstractmethod
    def replace_outgoing_edges(self, path: str, targets: Iterable[Link]) -> LinkUpdateResult: ...

    @abstractmethod
    def would_create_cycle(self, source: str, target: str) -> bool: ...

    @abstractmethod
    def traverse(
        self,
        start_paths: Iterable[str],
        max_depth: int,
        max_count: int,
        cancel_event: CancelEvent | None = None,
    ) -> list[TraversalHit]: ...

    @abstractmethod
    def incoming_edges(self, path: str) -> list[str]: ...

    @abstractmethod
    def outgoing_edges(self, path: str) -> list[str]: ...

    @abstractmethod
    def enumerate_cycles(self) -> list[list[str]]: ...

    @abstractmethod
    def on_document_indexed(self, path: str, outgoing_links: Iterable[Link]) -> LinkUpdateResult: ...

    @abstractmethod
    def on_document_deleted(self, path: str) -> bool: ...

    @abstractmethod
    def on_full_rebuild(
        self, documents_with_links: Mapping[str, Iterable[Link]] | Iterable[tuple[str, Iterable[Link]]]
    ) -> None: ...


class DocumentLinkGraph(LinkGraph):
    """
    Thread-safe in-memory link graph.

    Reads (traversal, enumeration, statistics) share the lock; mutations
    are exclusive, and replacing a document's outgoing edges happens in a
    single critical section so readers never observe a half-updated
    neighbourhood.

    Example:
        graph = DocumentLinkGraph()
        graph.on_document_indexed("docs/a.md", ["docs/b.md", "docs/c.md"])
        hits = graph.traverse(["docs/a.md"], max_depth=2, max_count=5)
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._out: dict[str, dict[str, RelationshipType]] = {}
        self._in: dict[str, dict[str, RelationshipType]] = {}
        # Vertices added explicitly or as a link source; the rest are dangling targets.
        self._indexed: set[str] = set()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @property
    def vertex_count(self) -> int:
        with self._lock.read_locked():
            return len(self._out)

    @property
    def edge_count(self) -> int:
        with self._lock.read_locked():
            return sum(len(targets) for targets in self._out.values())

    def contains(self, path: str) -> bool:
        with self._lock.read_locked():
            return path in self._out

    def __contains__(self, path: str) -> bool:
        return self.contains(path)

    def snapshot(self) -> GraphSnapshot:
        with self._lock.read_locked():
            return GraphSnapshot(
                vertices=frozenset(self._out),
                edges=frozenset(
                    (source, target)
                    for source, targets in self._out.items()
                    for target in targets
                ),
            )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_vertex(self, path: str) -> bool:
        """
        Add a vertex if absent.

        Returns:
            True if the vertex was created
        """
        with self._lock.write_locked():
            self._indexed.add(path)
            return self._ensure_vertex(path)

    def remove_vertex(self, path: str) -> bool:
        """
        Remove a vertex together with every incident edge.

        Returns:
            True if the vertex existed
        """
        with self._lock.write_locked():
            if path not in self._out:
                return False
            self._indexed.discard(path)
            targets = self._out.pop(path)
            for target in targets:
                self._in[target].pop(path, None)
            for source in self._in.pop(path):
                self._out[source].pop(path, None)
            for target in targets:
                self._prune(target)
            return True

    def replace_outgoing_edges(self, path: str, targets: Iterable[Link]) -> LinkUpdateResult:
        """
        Atomically replace every outgoing edge of ``path``.

        Duplicate targets collapse to one edge and self-links are dropped.
        A target whose relationship type changes keeps its edge and is
        reported in neither ``added`` nor ``removed``.
        Each newly added edge is checked for closing a cycle; such edges
        are kept and reported in ``cycle_targets``.

        Args:
            path: Source document path
            targets: Link targets in document order, bare or as
                (target, RelationshipType) pairs

        Returns:
            LinkUpdateResult describing the change
        """
        wanted = _normalize_links(path, targets)

        result = LinkUpdateResult(path=path)
        with self._lock.write_locked():
            self._indexed.add(path)
            self._ensure_vertex(path)
            current = self._out[path]

            for target in [t for t in current if t not in wanted]:
                del current[target]
                self._in[target].pop(path, None)
                result.removed.append(target)

            # Rebuild in the new link order; existing edges keep their identity.
            self._out[path] = {}
            for target, kind in wanted.items():
                self._ensure_vertex(target)
                self._out[path][target] = kind
                self._in[target][path] = kind
                if target not in current:
                    result.added.append(target)

            for target in result.added:
                if self._reaches(target, path):
                    result.cycle_targets.append(target)

            for target in result.removed:
                self._prune(target)

        return result

    def clear(self) -> None:
        with self._lock.write_locked():
            self._out = {}
            self._in = {}
            self._indexed = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def would_create_cycle(self, source: str, target: str) -> bool:
        """True if adding source -> target would close a cycle (target already reaches source)."""
        if source == target:
            return True
        with self._lock.read_locked():
            return self._reaches(target, source)

    def traverse(
        self,
        start_paths: Iterable[str],
        max_depth: int,
        max_count: int,
        cancel_event: CancelEvent | None = None,
    ) -> list[TraversalHit]:
        """
        Bounded level-by-level BFS over outgoing links.

        Start paths are never emitted. Each vertex is emitted at most once,
        at the level where it was first discovered, with the vertex that
        discovered it as ``referring_path``.

        Args:
            start_paths: Seed paths, in priority order
            max_depth: Maximum number of levels to expand (0 = none)
            max_count: Maximum number of hits to emit (0 = none)
            cancel_event: Checked between levels

        Returns:
            Hits ordered by depth, then discovery order

        Raises:
            asyncio.CancelledError: If cancel_event is set between levels
        """
        if max_depth <= 0 or max_count <= 0:
            return []

        seeds = list(dict.fromkeys(start_paths))
        visited = set(seeds)
        hits: list[TraversalHit] = []

        with self._lock.read_locked():
            frontier = [p for p in seeds if p in self._out]
            for depth in range(1, max_depth + 1):
                if not frontier:
                    break
                raise_if_cancelled(cancel_event)
                next_frontier = []
                for source in frontier:
                    for target in self._out[source]:
                        if target in visited:
                            continue
                        visited.add(target)
                        hits.append(TraversalHit(path=target, depth=depth, referring_path=source))
                        if len(hits) >= max_count:
                            return hits
                        next_frontier.append(target)
                frontier = next_frontier

        return hits

    def incoming_edges(self, path: str) -> list[str]:
        with self._lock.read_locked():
            return list(self._in.get(path, ()))

    def outgoing_edges(self, path: str) -> list[str]:
        with self._lock.read_locked():
            return list(self._out.get(path, ()))

    # ------------------------------------------------------------------
    # Typed relationships
    # ------------------------------------------------------------------

    def typed_relationships(self, path: str) -> list[DocumentRelationship]:
        """Outgoing edges of ``path`` with their relationship types."""
        with self._lock.read_locked():
            return [
                DocumentRelationship(path, target, kind)
                for target, kind in self._out.get(path, {}).items()
            ]

    def incoming_typed_relationships(self, path: str) -> list[DocumentRelationship]:
        with self._lock.read_locked():
            return [
                DocumentRelationship(source, path, kind)
                for source, kind in self._in.get(path, {}).items()
            ]

    def documents_by_relationship(
        self, path: str, relationship_type: RelationshipType
    ) -> list[str]:
        """Targets that ``path`` links to with the given relationship type."""
        with self._lock.read_locked():
            return [
                target
                for target, kind in self._out.get(path, {}).items()
                if kind == relationship_type
            ]

    def child_documents(self, path: str) -> list[str]:
        return self.documents_by_relationship(path, RelationshipType.PARENT)

    def parent_documents(self, path: str) -> list[str]:
        with self._lock.read_locked():
            return [
                source
                for source, kind in self._in.get(path, {}).items()
                if kind is RelationshipType.PARENT
            ]

    def dependencies(self, path: str) -> list[str]:
        return self.documents_by_relationship(path, RelationshipType.DEPENDS_ON)

    def dependents(self, path: str) -> list[str]:
        with self._lock.read_locked():
            return [
                source
                for source, kind in self._in.get(path, {}).items()
                if kind is RelationshipType.DEPENDS_ON
            ]

    def find_related_documents(
        self,
        path: str,
        max_depth: int,
        relationship_types: Iterable[RelationshipType] | None = None,
        max_count: int | None = None,
    ) -> list[DocumentRelationship]:
        """
        Breadth-first walk from ``path`` following only the given relationship types.

        Args:
            path: Start document (never emitted)
            max_depth: Maximum number of hops
            relationship_types: Types to follow; None follows every type
            max_count: Maximum number of relationships to return

        Returns:
            The edge through which each document was first reached, in BFS order
        """
        if max_count is not None and max_count <= 0:
            return []
        allowed = None if relationship_types is None else set(relationship_types)
        visited = {path}
        related: list[DocumentRelationship] = []

        with self._lock.read_locked():
            frontier = [path] if path in self._out else []
            for _ in range(max_depth):
                next_frontier = []
                for source in frontier:
                    for target, kind in self._out[source].items():
                        if target in visited or (allowed is not None and kind not in allowed):
                            continue
                        visited.add(target)
                        related.append(DocumentRelationship(source, target, kind))
                        if max_count is not None and len(related) >= max_count:
                            return related
                        next_frontier.append(target)
                frontier = next_frontier
                if not frontier:
                    break

        return related

    def relationship_type_counts(self) -> dict[RelationshipType, int]:
        with self._lock.read_locked():
            counts: dict[RelationshipType, int] = {}
            for targets in self._out.values():
                for kind in targets.values():
                    counts[kind] = counts.get(kind, 0) + 1
            return counts

    def find_cycle(self, path: str) -> list[str] | None:
        """
        Find a shortest cycle through ``path``.

        Returns:
            The cycle's vertices starting at ``path`` (the closing edge back
            to ``path`` is implied), or None if no cycle passes through it
        """
        with self._lock.read_locked():
            if path not in self._out:
                return None
            parents: dict[str, str] = {}
            queue = deque()
            for target in self._out[path]:
                if target not in parents:
                    parents[target] = path
                    queue.append(target)
            while queue:
                current = queue.popleft()
                if current == path:
                    break
                for target in self._out[current]:
                    if target not in parents:
                        parents[target] = current
                        queue.append(target)
            if path not in parents:
                return None

            cycle = []
            node = parents[path]
            while node != path:
                cycle.append(node)
                node = parents[node]
            cycle.append(path)
            cycle.reverse()
            return cycle

    def is_acyclic(self) -> bool:
        return not self.enumerate_cycles()

    def enumerate_cycles(self) -> list[list[str]]:
        """
        Strongly connected components with more than one vertex.

        Uses an iterative Tarjan so deep link chains cannot overflow the
        interpreter stack.

        Returns:
            Each component as a sorted path list; components sorted by first path
        """
        with self._lock.read_locked():
            index: dict[str, int] = {}
            lowlinks: dict[str, int] = {}
            stack: list[str] = []
            on_stack: set[str] = set()
            components: list[list[str]] = []
            counter = 0

            for root in self._out:
                if root in index:
                    continue
                work = [(root, iter(self._out[root]))]
                index[root] = lowlinks[root] = counter
                counter += 1
                stack.append(root)
                on_stack.add(root)

                while work:
                    node, children = work[-1]
                    advanced = False
                    for child in children:
                        if child not in index:
                            index[child] = lowlinks[child] = counter
                            counter += 1
                            stack.append(child)
                            on_stack.add(child)
                            work.append((child, iter(self._out[child])))
                            advanced = True
                            break
                        if child in on_stack:
                            lowlinks[node] = min(lowlinks[node], index[child])
                    if advanced:
                        continue

                    work.pop()
                    if work:
                        parent = work[-1][0]
                        lowlinks[parent] = min(lowlinks[parent], lowlinks[node])

                    if lowlinks[node] == index[node]:
                        component = []
                        while True:
                            member = stack.pop()
                            on_stack.discard(member)
                            component.append(member)
                            if member == node:
                                break
                        if len(component) > 1:
                            components.append(sorted(component))

        components.sort(key=lambda c: c[0])
        return components

    # ------------------------------------------------------------------
    # Indexer hooks
    # ------------------------------------------------------------------

    def on_document_indexed(self, path: str, outgoing_links: Iterable[Link]) -> LinkUpdateResult:
        """Replace the document's links; cycles are logged, never blocked."""
        result = self.replace_outgoing_edges(path, outgoing_links)
        for target in result.cycle_targets:
            logger.warning(f"Link {path} -> {target} creates a cycle")
        logger.debug(
            f"Indexed links for {path}: +{len(result.added)} -{len(result.removed)}"
        )
        return result

    def on_document_deleted(self, path: str) -> bool:
        removed = self.remove_vertex(path)
        if removed:
            logger.debug(f"Removed {path} from link graph")
        return removed

    def on_full_rebuild(
        self, documents_with_links: Mapping[str, Iterable[Link]] | Iterable[tuple[str, Iterable[Link]]]
    ) -> None:
        """
        Replace the whole graph from a complete corpus listing.

        The new adjacency is built outside the lock and swapped in under the
        write lock, so queries see either the old or the new graph.
        """
        items = (
            documents_with_links.items()
            if isinstance(documents_with_links, Mapping)
            else documents_with_links
        )
        new_out: dict[str, dict[str, RelationshipType]] = {}
        new_in: dict[str, dict[str, RelationshipType]] = {}
        new_indexed: set[str] = set()

        def ensure(vertex: str) -> None:
            if vertex not in new_out:
                new_out[vertex] = {}
                new_in[vertex] = {}

        for path, links in items:
            ensure(path)
            new_indexed.add(path)
            for target, kind in _normalize_links(path, links).items():
                ensure(target)
                new_out[path][target] = kind
                new_in[target][path] = kind

        with self._lock.write_locked():
            self._out = new_out
            self._in = new_in
            self._indexed = new_indexed

        edge_count = sum(len(targets) for targets in new_out.values())
        logger.info(f"Rebuilt link graph: {len(new_out)} vertices, {edge_count} edges")

        cycles = self.enumerate_cycles()
        if cycles:
            logger.warning(f"Link graph contains {len(cycles)} cycle(s) after rebuild")

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _ensure_vertex(self, path: str) -> bool:
        if path in self._out:
            return False
        self._out[path] = {}
        self._in[path] = {}
        return True

    def _prune(self, path: str) -> None:
        """Drop a dangling target once nothing links to it."""
        if path in self._indexed or self._out.get(path) or self._in.get(path):
            return
        self._out.pop(path, None)
        self._in.pop(path, None)

    def _reaches(self, start: str, goal: str) -> bool:
        if start == goal:
            return True
        seen = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for target in self._out.get(current, ()):
                if target == goal:
                    return True
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return False
