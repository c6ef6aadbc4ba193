"""
Query orchestration.

reasoner (translate → infer) → [vector search ∥ graph pattern match] → ranker

Every backend call goes through the resilience core. A failing branch never
cancels its sibling; the ranker fills missing signals with neutral values.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from codegraph.core.interfaces.embedding_service_interface import EmbeddingServiceInterface
from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.interfaces.reasoner_interface import ReasonerInterface
from codegraph.core.interfaces.vector_store_interface import VectorStoreInterface
from codegraph.core.types.common_types import (
    NarseseStatement,
    OperatingMode,
    RankedResults,
    ServiceType,
)
from codegraph.modules.feedback.truth_value import revise
from codegraph.modules.reasoning.narsese import extract_search_terms, truth_for_terms
from codegraph.modules.retrieval.query_processor import QueryProcessor
from codegraph.modules.retrieval.ranker import HybridRanker
from codegraph.services.degradation_manager import ResponseCache
from codegraph.services.metrics_service import MetricsContext
from codegraph.services.resilience import ResilienceCore
from codegraph.utils.exceptions import (
    InvalidInputError,
    NoSignalsError,
    NotFoundError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

MIN_CANDIDATES = 20


class QueryOrchestrator:
    def __init__(
        self,
        graph_store: GraphStoreInterface,
        vector_store: VectorStoreInterface,
        embedding_service: EmbeddingServiceInterface,
        reasoner: ReasonerInterface,
        resilience: ResilienceCore,
        metrics: MetricsContext,
        ranker: Optional[HybridRanker] = None,
        cache: Optional[ResponseCache] = None,
        default_limit: int = 10
    ):
        self.graph_store = graph_store
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.reasoner = reasoner
        self.resilience = resilience
        self.metrics = metrics
        self.ranker = ranker or HybridRanker()
        self.cache = cache if cache is not None else ResponseCache()
        self.default_limit = default_limit
        self.processor = QueryProcessor()

    @property
    def degradation(self):
        return self.resilience.degradation

    async def retrieve(self, query: str, limit: Optional[int] = None) -> RankedResults:
        """
        Retrieve and rank elements for a natural-language query.

        Raises:
            InvalidInputError: Empty query or non-positive limit
            ServiceUnavailableError: Cached-only mode and nothing cached for this query
            NoSignalsError: Every retrieval backend failed and nothing is cached
        """
        if not query or not query.strip():
            raise InvalidInputError("Query must not be empty")
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            raise InvalidInputError(f"limit must be positive, got {limit}")

        start = time.perf_counter()
        self.metrics.increment("queries")
        mode = self.degradation.operating_mode()

        if mode == OperatingMode.CACHED_ONLY:
            return self._serve_cached(query, mode, start, [ServiceType.VECTOR, ServiceType.GRAPH])

        failed: List[ServiceType] = []
        statements = await self._reason(query, failed)
        terms = extract_search_terms(statements) or self.processor.process(query).search_terms
        candidates = max(limit * 3, MIN_CANDIDATES)

        branches: Dict[ServiceType, asyncio.Future] = {}
        if mode.uses_vector():
            branches[ServiceType.VECTOR] = asyncio.ensure_future(self._vector_branch(query, candidates))
        if mode.uses_graph():
            branches[ServiceType.GRAPH] = asyncio.ensure_future(self._graph_branch(terms, candidates))

        # shield: if our caller abandons the query, the backend calls still finish
        outcomes = await asyncio.gather(*(asyncio.shield(b) for b in branches.values()), return_exceptions=True)

        vector_hits: List[Tuple[UUID, float]] = []
        graph_hits: List[Tuple[UUID, int]] = []
        for service, outcome in zip(branches, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"{service.value} branch failed for '{query}': {outcome!r}")
                failed.append(service)
            elif service == ServiceType.VECTOR:
                vector_hits = outcome
            else:
                graph_hits = outcome

        if branches and all(s in failed for s in branches):
            cached = self.cache.get_stale(query)
            if cached is not None:
                return self._serve_cached(query, mode, start, failed)
            self.degradation.record_degraded_request()
            raise NoSignalsError(f"All retrieval backends failed for '{query}': {[s.value for s in failed]}")

        candidate_ids = list(dict.fromkeys([i for i, _ in vector_hits] + [i for i, _ in graph_hits]))
        confidences = await self._narsese_confidences(candidate_ids, statements, mode)

        results = self.ranker.rank(vector_hits, graph_hits, confidences, limit)
        degraded = bool(failed) or mode != OperatingMode.FULL or not confidences
        latency_ms = (time.perf_counter() - start) * 1000

        if results and not failed:
            self.cache.set(query, results)
        if degraded:
            self.degradation.record_degraded_request()
            self.metrics.increment("degraded_queries")
        self.metrics.record_query_latency(latency_ms)

        logger.info(
            f"Retrieved {len(results)} results for '{query}' in {latency_ms:.1f}ms "
            f"(mode={mode.value}, vector={len(vector_hits)}, graph={len(graph_hits)}, "
            f"statements={len(statements)}{', degraded' if degraded else ''})"
        )
        return RankedResults(
            query=query,
            results=results,
            mode=mode,
            degraded=degraded,
            failed_services=failed,
            latency_ms=latency_ms
        )

    async def _reason(self, query: str, failed: List[ServiceType]) -> List[NarseseStatement]:
        async def translate_and_infer():
            statements = await self.reasoner.translate(query)
            return await self.reasoner.infer(statements)

        try:
            return await self.resilience.call(ServiceType.REASONER, translate_and_infer)
        except Exception as e:
            logger.warning(f"Reasoning unavailable for '{query}', continuing without NARS confidence: {e!r}")
            failed.append(ServiceType.REASONER)
            return []

    async def _vector_branch(self, query: str, candidates: int) -> List[Tuple[UUID, float]]:
        embedding = await self.resilience.call(ServiceType.LLM, self.embedding_service.embed_text, query)
        return await self.resilience.call(ServiceType.VECTOR, self.vector_store.search, embedding, candidates)

    async def _graph_branch(self, terms: List[str], candidates: int) -> List[Tuple[UUID, int]]:
        if not terms:
            return []
        return await self.resilience.call(ServiceType.GRAPH, self.graph_store.find_by_terms, terms, candidates)

    async def _narsese_confidences(
        self,
        element_ids: List[UUID],
        statements: List[NarseseStatement],
        mode: OperatingMode
    ) -> Dict[UUID, float]:
        """
        Per-element ranking confidence: the expectation of the element's learned truth,
        revised with the statement naming its category or name when there is one.
        Expectation reads frequency as well as confidence, so negative feedback lowers it.
        """
        if not statements or not element_ids or not mode.uses_graph():
            return {}

        lookups = await asyncio.gather(
            *(self.resilience.call(ServiceType.GRAPH, self.graph_store.get_element, i) for i in element_ids),
            return_exceptions=True
        )

        confidences = {}
        for element_id, element in zip(element_ids, lookups):
            if isinstance(element, NotFoundError):
                logger.debug(f"Element {element_id} vanished from the graph; ranking it with neutral confidence")
                continue
            if isinstance(element, BaseException):
                logger.warning(f"Element lookup failed for {element_id}: {element!r}")
                continue
            statement_truth = truth_for_terms([element.category, element.name], statements)
            truth = element.truth if statement_truth is None else revise(statement_truth, element.truth)
            confidences[element_id] = truth.expectation()
        return confidences

    def _serve_cached(
        self,
        query: str,
        mode: OperatingMode,
        start: float,
        failed: List[ServiceType]
    ) -> RankedResults:
        cached = self.cache.get_stale(query)
        self.degradation.record_degraded_request()
        if cached is None:
            raise ServiceUnavailableError(f"No backends available and no cached response for '{query}'")

        results, age = cached
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.increment("cached_queries")
        self.metrics.record_query_latency(latency_ms)
        logger.info(f"Serving cached response for '{query}' (age {age:.0f}s, mode={mode.value})")
        return RankedResults(
            query=query,
            results=list(results),
            mode=mode,
            degraded=True,
            from_cache=True,
            failed_services=list(failed),
            latency_ms=latency_ms
        )
