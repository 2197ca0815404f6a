"""
Exception hierarchy for compound-rag.

Upstream failures are raised so that an unreachable backend is never
mistaken for "no relevant knowledge found". Data-integrity problems
(dangling links, supersession cycles, deep chains) are NOT raised; they
are logged and reported on result objects instead.
"""


class CompoundRagError(Exception):
    """Base class for all compound-rag errors."""


class ConfigError(CompoundRagError, ValueError):
    """Invalid configuration file or override."""


class InvalidRetrievalOptionsError(CompoundRagError, ValueError):
    """Retrieval options out of range; rejected before any work starts."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__(f"Invalid retrieval options: {'; '.join(self.problems)}")


class UpstreamUnavailableError(CompoundRagError):
    """An external collaborator (vector store, repository) could not be reached."""


class VectorStoreUnavailableError(UpstreamUnavailableError):
    """The vector store failed or timed out."""


class RepositoryUnavailableError(UpstreamUnavailableError):
    """A document or supersession repository failed or timed out."""
