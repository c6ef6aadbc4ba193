"""
Confidence propagation across the knowledge graph.

A feedback event updates its target at full strength (hop 0), then walks
SIMILAR_TO / CAN_REPLACE relations breadth-first. At hop n the applied delta is
base_delta * decay_factor**n * edge.base_weight.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.types.common_types import (
    FeedbackEvent,
    PropagationRelation,
    RelationKind,
    TruthValue,
)
from codegraph.modules.feedback.truth_value import TruthValueStore
from codegraph.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 2
DEFAULT_DECAY_FACTOR = 0.5

PROPAGATING_RELATIONS = frozenset({RelationKind.SIMILAR_TO, RelationKind.CAN_REPLACE})

RelationResolver = Callable[[UUID], Awaitable[List[PropagationRelation]]]


@dataclass(frozen=True)
class PropagationUpdate:
    element_id: UUID
    old_truth: TruthValue
    new_truth: TruthValue
    hop_distance: int

    @property
    def confidence_change(self) -> float:
        return self.new_truth.confidence - self.old_truth.confidence


@dataclass
class PropagationResult:
    event_id: UUID
    updates: List[PropagationUpdate] = field(default_factory=list)
    partial: bool = False
    max_hop_reached: int = 0
    error: Optional[str] = None

    def touched_ids(self) -> List[UUID]:
        return [u.element_id for u in self.updates]

    def total_confidence_change(self) -> float:
        return sum(u.confidence_change for u in self.updates)

    def target_update(self) -> Optional[PropagationUpdate]:
        return next((u for u in self.updates if u.hop_distance == 0), None)

    def updates_at_hop(self, hop: int) -> List[PropagationUpdate]:
        return [u for u in self.updates if u.hop_distance == hop]

    def to_dict(self) -> dict:
        return {
            "event_id": str(self.event_id),
            "partial": self.partial,
            "max_hop_reached": self.max_hop_reached,
            "error": self.error,
            "updates": [
                {
                    "element_id": str(u.element_id),
                    "old_truth": u.old_truth.to_dict(),
                    "new_truth": u.new_truth.to_dict(),
                    "hop_distance": u.hop_distance
                }
                for u in self.updates
            ]
        }


class ConfidencePropagator:
    """
    Spreads a feedback event's confidence delta through related elements.

    The visited set lives for a single propagate() call. An element is only
    updated at its shortest hop distance, so cycles terminate and cannot
    amplify a delta.
    """

    def __init__(
        self,
        store: TruthValueStore,
        max_hops: int = DEFAULT_MAX_HOPS,
        decay_factor: float = DEFAULT_DECAY_FACTOR,
        hop0_mode: str = "revision",
        positive_delta: float = 0.1,
        negative_delta: float = -0.15,
        evidence_confidence: float = 0.8
    ):
        if max_hops < 0:
            raise ValueError("max_hops must be >= 0")
        if not 0 < decay_factor < 1:
            raise ValueError("decay_factor must be in (0, 1)")
        if hop0_mode not in ("revision", "delta"):
            raise ValueError(f"Unknown hop0_mode '{hop0_mode}'")
        self.store = store
        self.max_hops = max_hops
        self.decay_factor = decay_factor
        self.hop0_mode = hop0_mode
        self.positive_delta = positive_delta
        self.negative_delta = negative_delta
        self.evidence_confidence = evidence_confidence

    def base_delta(self, event: FeedbackEvent) -> float:
        return self.positive_delta if event.polarity.is_positive else self.negative_delta

    def hop_delta(self, base_delta: float, hop: int, edge_weight: float) -> float:
        return base_delta * (self.decay_factor ** hop) * edge_weight

    async def _update_target(self, event: FeedbackEvent) -> PropagationUpdate:
        if self.hop0_mode == "revision":
            evidence = TruthValue(event.polarity.evidence().frequency, self.evidence_confidence)
            old, new = await self.store.revise_element(event.target_element, evidence)
        else:
            old, new = await self.store.nudge_element(event.target_element, self.base_delta(event))
        return PropagationUpdate(event.target_element, old, new, 0)

    @staticmethod
    def _mark_partial(result: PropagationResult, error: Exception, element_id: UUID, hop: int):
        result.partial = True
        result.error = f"{type(error).__name__}: {error}"
        logger.warning(f"Truth update failed for {element_id} at hop {hop}: {error}")

    async def propagate(
        self,
        event: FeedbackEvent,
        relations: Union[RelationResolver, GraphStoreInterface]
    ) -> PropagationResult:
        """
        Apply a feedback event to its target and decay it outward.

        Args:
            event: Feedback to apply
            relations: Async callable returning the relations leaving an element,
                or a graph store whose get_relations is used

        Returns:
            PropagationResult with one entry per touched element. partial is set
            when relations could not be resolved; the hop-0 update still stands.

        Raises:
            NotFoundError: If the target element does not exist
        """
        resolver = relations.get_relations if isinstance(relations, GraphStoreInterface) else relations
        result = PropagationResult(event_id=event.id)

        result.updates.append(await self._update_target(event))

        base_delta = self.base_delta(event)
        visited = {event.target_element}
        frontier = [event.target_element]

        for hop in range(1, self.max_hops + 1):
            pending: Dict[UUID, List[float]] = {}
            try:
                for element_id in frontier:
                    for relation in await resolver(element_id):
                        if relation.relation_kind not in PROPAGATING_RELATIONS:
                            continue
                        if relation.target in visited:
                            continue
                        # Several paths into the same element within one hop accumulate
                        delta = self.hop_delta(base_delta, hop, relation.base_weight)
                        pending.setdefault(relation.target, []).append(delta)
            except Exception as e:
                result.partial = True
                result.error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"Relation lookup failed at hop {hop} for event {event.id}; "
                    f"keeping {len(result.updates)} updates: {e}"
                )
                break

            next_frontier = []
            for element_id, deltas in pending.items():
                visited.add(element_id)
                try:
                    old, new = await self.store.nudge_element(element_id, deltas[0])
                except NotFoundError:
                    logger.warning(f"Skipping dangling relation to missing element {element_id}")
                    continue
                except Exception as e:
                    self._mark_partial(result, e, element_id, hop)
                    continue

                # Each path clamps on its own; a written nudge is always reported
                for delta in deltas[1:]:
                    try:
                        _, new = await self.store.nudge_element(element_id, delta)
                    except Exception as e:
                        self._mark_partial(result, e, element_id, hop)
                        break
                result.updates.append(PropagationUpdate(element_id, old, new, hop))
                next_frontier.append(element_id)

            if next_frontier:
                result.max_hop_reached = hop
            if result.partial:
                break
            frontier = next_frontier
            if not frontier:
                break

        logger.info(
            f"Propagated {event.polarity.value} feedback {event.id}: {len(result.updates)} elements, "
            f"max hop {result.max_hop_reached}{' (partial)' if result.partial else ''}"
        )
        return result
