"""
Relevance retriever: threshold, boost, rank and cap vector-store matches.
"""

from collections.abc import Sequence

from loguru import logger

from ..models import RetrievalOptions, RetrievalResult, RetrievedDocument
from ..storage.vector_store import SearchFilter, VectorStore
from .scoring import ScoringConfig, apply_boost, parse_promotion_level


def search_filter_for(options: RetrievalOptions) -> SearchFilter:
    return SearchFilter(
        tenant=options.tenant,
        min_promotion_level=options.min_promotion_level,
        doc_types=options.doc_types,
    )


class RelevanceRetriever:
    """
    Similarity retrieval with promotion-aware boosting.

    Pipeline:
    1. Over-fetch ``max_results * overfetch_factor`` hits from the vector store
    2. Drop hits whose raw score is strictly below ``min_relevance_score``
    3. Boost by promotion level (clamped), or keep raw when boosting is off
    4. Sort by boosted score descending (ties by path) and truncate

    One vector-store call per invocation. VectorStoreUnavailableError from
    the store propagates unchanged.
    """

    def __init__(self, vector_store: VectorStore, scoring: ScoringConfig | None = None):
        self.vector_store = vector_store
        self.scoring = scoring or ScoringConfig.from_config()

    async def retrieve(
        self, query_embedding: Sequence[float], options: RetrievalOptions
    ) -> RetrievalResult:
        """
        Retrieve ranked direct matches for a query embedding.

        Args:
            query_embedding: Query vector
            options: Validated retrieval options

        Returns:
            RetrievalResult with at most ``max_results`` documents and the
            post-threshold, pre-truncation match count
        """
        top_n = options.max_results * self.scoring.overfetch_factor
        search_filter = search_filter_for(options)
        hits = await self.vector_store.search(query_embedding, top_n, search_filter)

        documents = []
        for hit in hits:
            if hit.score < options.min_relevance_score:
                continue

            stored = hit.document
            level = parse_promotion_level(stored.promotion_level, stored.path)

            # Stores may apply filters approximately; enforce them again here.
            if level.rank < options.min_promotion_level.rank:
                continue
            if not options.allows_doc_type(stored.doc_type):
                continue

            if options.apply_relevance_boosting:
                boosted = apply_boost(hit.score, level, self.scoring)
            else:
                boosted = hit.score

            documents.append(
                RetrievedDocument.from_stored(
                    stored, level, raw_score=hit.score, boosted_score=boosted
                )
            )

        total_matches = len(documents)
        documents.sort(key=lambda doc: (-doc.boosted_score, doc.path))
        documents = documents[: options.max_results]

        logger.debug(
            f"Retrieved {len(documents)}/{total_matches} documents "
            f"(fetched {len(hits)}, threshold {options.min_relevance_score})"
        )
        return RetrievalResult(documents=documents, total_matches=total_matches)
