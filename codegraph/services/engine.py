"""
Retrieval engine facade.

Wires the graph, vector, embedding and reasoning backends to the ranking and
feedback pipelines, with every backend call routed through one resilience core.

    engine = create_engine()
    results = await engine.retrieve("primary button with icon")
    outcome = await engine.submit_feedback(FeedbackEvent.create(element_id, "positive"))
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from codegraph.config.settings import Settings
from codegraph.core.interfaces.embedding_service_interface import EmbeddingServiceInterface
from codegraph.core.interfaces.feedback_repository_interface import FeedbackRepositoryInterface
from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.interfaces.reasoner_interface import ReasonerInterface
from codegraph.core.interfaces.vector_store_interface import VectorStoreInterface
from codegraph.core.types.common_types import (
    Element,
    FeedbackEvent,
    OperatingMode,
    RankedResults,
    ServiceHealth,
    ServiceType,
    TruthValue,
)
from codegraph.modules.feedback.propagation import ConfidencePropagator, PropagationResult
from codegraph.modules.feedback.reward import RewardComputer, RewardResult, RewardSignals, RewardWeights
from codegraph.modules.feedback.truth_value import TruthValueStore
from codegraph.modules.retrieval.orchestrator import QueryOrchestrator
from codegraph.modules.retrieval.ranker import HybridRanker, RankingWeights
from codegraph.services.degradation_manager import DegradationStatus, ResponseCache
from codegraph.services.metrics_service import MetricsContext, MetricsSnapshot
from codegraph.services.resilience import GuardedGraphStore, ResilienceCore
from codegraph.utils.exceptions import InvalidInputError, NotFoundError
from codegraph.utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class FeedbackOutcome:
    event: FeedbackEvent
    propagation: PropagationResult
    reward: RewardResult

    @property
    def confidence_delta(self) -> float:
        target = self.propagation.target_update()
        return target.confidence_change if target else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feedback_id": str(self.event.id),
            "target_element": str(self.event.target_element),
            "polarity": self.event.polarity.value,
            "confidence_delta": self.confidence_delta,
            "propagation": self.propagation.to_dict(),
            "reward": self.reward.to_dict()
        }


class RetrievalEngine:
    """
    Entry point for queries and feedback.

    Owns the resilience core, metrics context and response cache; the backends
    are injected so tests can use in-memory stores.
    """

    def __init__(
        self,
        graph_store: GraphStoreInterface,
        vector_store: VectorStoreInterface,
        embedding_service: EmbeddingServiceInterface,
        reasoner: ReasonerInterface,
        feedback_repository: Optional[FeedbackRepositoryInterface] = None,
        settings: Optional[Settings] = None,
        resilience: Optional[ResilienceCore] = None,
        metrics: Optional[MetricsContext] = None,
        cache: Optional[ResponseCache] = None
    ):
        self.settings = settings or Settings()
        self.graph_store = graph_store
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.reasoner = reasoner
        self.feedback_repository = feedback_repository
        self.resilience = resilience or ResilienceCore.from_settings(self.settings.resilience)
        self.metrics = metrics or MetricsContext()
        self.cache = cache if cache is not None else ResponseCache(
            max_entries=self.settings.cache.max_entries,
            ttl=self.settings.cache.ttl_seconds
        )

        truth = self.settings.truth
        self.guarded_graph = GuardedGraphStore(graph_store, self.resilience)
        self.truth_store = TruthValueStore(self.guarded_graph, truth.min_confidence, truth.max_confidence)
        self.propagator = ConfidencePropagator(
            self.truth_store,
            max_hops=self.settings.propagation.max_hops,
            decay_factor=self.settings.propagation.decay_factor,
            hop0_mode=self.settings.propagation.hop0_mode,
            positive_delta=truth.positive_delta,
            negative_delta=truth.negative_delta,
            evidence_confidence=truth.evidence_confidence
        )

        reward = self.settings.reward
        self.reward_computer = RewardComputer(
            RewardWeights(
                base_confidence=reward.base_confidence_weight,
                similarity_bonus=reward.similarity_weight,
                connectivity_bonus=reward.connectivity_weight,
                negative_penalty=reward.negative_penalty_weight
            ),
            connectivity_k=reward.connectivity_k
        )

        self.orchestrator = QueryOrchestrator(
            graph_store=graph_store,
            vector_store=vector_store,
            embedding_service=embedding_service,
            reasoner=reasoner,
            resilience=self.resilience,
            metrics=self.metrics,
            ranker=HybridRanker(RankingWeights.from_settings(self.settings.ranking)),
            cache=self.cache,
            default_limit=self.settings.ranking.default_limit
        )

    @property
    def degradation(self):
        return self.resilience.degradation

    async def retrieve(self, query: str, limit: Optional[int] = None) -> RankedResults:
        return await self.orchestrator.retrieve(query, limit)

    async def index_element(self, element: Element, text: Optional[str] = None) -> None:
        """Embeds an element's description and stores it in the vector store."""
        description = text or " ".join([element.name, element.category, *element.tags])
        embedding = await self.resilience.call(ServiceType.LLM, self.embedding_service.embed_text, description)
        await self.resilience.call(
            ServiceType.VECTOR,
            self.vector_store.upsert,
            element.id,
            embedding,
            {"category": element.category, "design_system": element.design_system}
        )

    async def submit_feedback(self, event: FeedbackEvent) -> FeedbackOutcome:
        """
        Apply a thumbs up/down to an element and propagate it through the graph.

        Propagation and persistence problems are logged and reflected in the
        outcome's partial flag; they never fail the submission.

        Raises:
            InvalidInputError: If event is not a FeedbackEvent
            NotFoundError: If the target element does not exist
        """
        if not isinstance(event, FeedbackEvent):
            raise InvalidInputError(f"Expected FeedbackEvent, got {type(event).__name__}")

        target: Optional[Element] = None
        try:
            target = await self.guarded_graph.get_element(event.target_element)
            result = await self.propagator.propagate(event, self.guarded_graph.get_relations)
        except NotFoundError:
            raise
        except Exception as e:
            logger.warning(f"Graph unavailable while applying feedback {event.id}: {e!r}")
            result = PropagationResult(event_id=event.id, partial=True, error=f"{type(e).__name__}: {e}")

        reward = await self._compute_reward(event, target, result)
        outcome = FeedbackOutcome(event=event, propagation=result, reward=reward)

        if self.feedback_repository is not None:
            try:
                await self.feedback_repository.save(event, result, outcome.confidence_delta)
            except Exception as e:
                logger.warning(f"Failed to persist feedback {event.id}: {e}", exc_info=True)

        self.metrics.record_feedback(event.polarity, outcome.confidence_delta)
        if result.partial:
            self.metrics.increment("partial_propagations")

        logger.info(
            f"Feedback {event.id} on {event.target_element}: {event.polarity.value}, "
            f"Δconfidence={outcome.confidence_delta:+.3f}, reward={reward.reward:.3f}, "
            f"{len(result.updates)} elements updated"
        )
        return outcome

    async def _compute_reward(
        self,
        event: FeedbackEvent,
        target: Optional[Element],
        result: PropagationResult
    ) -> RewardResult:
        target_update = result.target_update()
        if target_update is not None:
            base_confidence = target_update.new_truth.confidence
        elif target is not None:
            base_confidence = target.truth.confidence
        else:
            base_confidence = 0.0

        neighbours = result.updates_at_hop(1)
        similarity_bonus = (
            sum(u.new_truth.confidence for u in neighbours) / len(neighbours) if neighbours else 0.0
        )

        negative_penalty = 0.0
        if self.feedback_repository is not None:
            try:
                negative_penalty = await self.feedback_repository.negative_ratio(event.target_element)
            except Exception as e:
                logger.warning(f"Feedback history unavailable for {event.target_element}: {e}")

        signals = RewardSignals(
            base_confidence=base_confidence,
            similarity_bonus=similarity_bonus,
            graph_degree=target.degree if target is not None else 0,
            negative_penalty=negative_penalty
        )
        return self.reward_computer.compute(event.target_element, signals)

    async def recompute_element(self, element_id: UUID, prior: Optional[TruthValue] = None) -> TruthValue:
        """Rebuilds an element's truth value from its recorded feedback history."""
        if self.feedback_repository is None:
            raise InvalidInputError("Recomputing truth values requires a feedback repository")
        history = await self.feedback_repository.find_by_element(element_id, limit=100000)
        # Repository returns newest first
        polarities = [row["polarity"] for row in reversed(history)]
        return await self.truth_store.recompute(
            element_id,
            prior or TruthValue(),
            polarities,
            evidence_confidence=self.settings.truth.evidence_confidence
        )

    def current_operating_mode(self) -> OperatingMode:
        return self.degradation.operating_mode()

    def health(self) -> Dict[ServiceType, ServiceHealth]:
        return self.degradation.all_services_health()

    def degradation_status(self) -> DegradationStatus:
        return self.degradation.status()

    def record_generation_latency(self, duration_ms: float):
        self.metrics.record_generation_latency(duration_ms)

    def metrics_snapshot(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    async def close(self):
        for backend in (self.embedding_service, self.reasoner):
            close = getattr(backend, "close", None)
            if close is not None:
                await close()


def create_engine(settings: Optional[Settings] = None, configure_logging: bool = False) -> RetrievalEngine:
    """Builds an engine with the backends selected by settings."""
    from codegraph.modules.embedding.embedding_client import EmbeddingClient, HashEmbeddingService
    from codegraph.modules.feedback.feedback_repository import FeedbackRepository
    from codegraph.modules.graph.file_graph_store import FileGraphStore
    from codegraph.modules.reasoning.ona_client import OfflineReasoner, OnaClient
    from codegraph.modules.vector.memory_vector_store import InMemoryVectorStore

    settings = settings or Settings()
    if configure_logging:
        setup_logging(settings.app.log_level)
    backends = settings.backends

    if backends.vector_backend == "chromadb":
        from codegraph.modules.vector.chromadb_adapter import ChromaDBVectorStore
        vector_store = ChromaDBVectorStore(
            persistence_directory=backends.chromadb_path,
            use_server=backends.chromadb_use_server,
            host=backends.chromadb_host,
            port=backends.chromadb_port,
            collection_name=backends.chromadb_collection
        )
    else:
        vector_store = InMemoryVectorStore(backends.embedding_dimension)

    if backends.embedding_url:
        embedding_service = EmbeddingClient(
            backends.embedding_url,
            model_name=backends.embedding_model,
            api_key=backends.embedding_api_key,
            dimension=backends.embedding_dimension,
            request_timeout=settings.resilience.llm_timeout_secs
        )
    else:
        logger.info("No embedding endpoint configured, using offline hash embeddings")
        embedding_service = HashEmbeddingService(backends.embedding_dimension)

    if backends.ona_url:
        reasoner = OnaClient(
            backends.ona_url,
            cycles=backends.ona_cycles,
            request_timeout=settings.resilience.default_timeout_secs
        )
    else:
        logger.info("No ONA endpoint configured, using the offline reasoner")
        reasoner = OfflineReasoner()

    return RetrievalEngine(
        graph_store=FileGraphStore(backends.graph_path),
        vector_store=vector_store,
        embedding_service=embedding_service,
        reasoner=reasoner,
        feedback_repository=FeedbackRepository(backends.feedback_db_path),
        settings=settings
    )
