"""
Truth-value revision and the per-element confidence store.

Two update paths exist:
- revise(): full NARS evidence combination, used when an element is recomputed from evidence
- apply_delta(): additive confidence nudge, used for low-latency acknowledgement and propagated hops
Both clamp confidence to [min_confidence, max_confidence] and frequency to [0, 1].
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, Optional, Tuple
from uuid import UUID

from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.types.common_types import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    Polarity,
    TruthValue,
)
from codegraph.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# Keeps k finite when confidence sits at its ceiling
EPSILON = 1e-9


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_truth(
    frequency: float,
    confidence: float,
    min_confidence: float = MIN_CONFIDENCE,
    max_confidence: float = MAX_CONFIDENCE
) -> TruthValue:
    return TruthValue(
        frequency=_clamp(frequency, 0.0, 1.0),
        confidence=_clamp(confidence, min_confidence, max_confidence)
    )


def evidence_weight(confidence: float) -> float:
    """k = c / (1 - c). Monotone in c, so more confident truth values weigh more."""
    return confidence / (1.0 - confidence + EPSILON)


def revise(
    old: TruthValue,
    evidence: TruthValue,
    min_confidence: float = MIN_CONFIDENCE,
    max_confidence: float = MAX_CONFIDENCE
) -> TruthValue:
    """
    Combine two independent truth values about the same statement.

    Args:
        old: Current truth value
        evidence: New independent evidence
        min_confidence: Lower clamp for the revised confidence
        max_confidence: Upper clamp for the revised confidence

    Returns:
        Revised truth value. Confidence grows with total evidence and never reaches 1.
    """
    k_old = evidence_weight(old.confidence)
    k_new = evidence_weight(evidence.confidence)
    k_total = k_old + k_new

    if k_total <= 0:
        frequency = (old.frequency + evidence.frequency) / 2
        confidence = 0.0
    else:
        frequency = (k_old * old.frequency + k_new * evidence.frequency) / k_total
        confidence = k_total / (k_total + 1.0)

    return clamp_truth(frequency, confidence, min_confidence, max_confidence)


def apply_delta(
    truth: TruthValue,
    delta: float,
    min_confidence: float = MIN_CONFIDENCE,
    max_confidence: float = MAX_CONFIDENCE
) -> TruthValue:
    """Fast path: nudge confidence additively, frequency unchanged."""
    return clamp_truth(truth.frequency, truth.confidence + delta, min_confidence, max_confidence)


def confidence_delta(polarity: Polarity) -> float:
    return polarity.confidence_delta()


class TruthValueStore:
    """
    Serializes truth-value updates per element on top of a graph store.

    Concurrent feedback on the same element must not lose updates, so each
    read-modify-write runs under that element's asyncio.Lock.
    """

    def __init__(
        self,
        graph_store: GraphStoreInterface,
        min_confidence: float = MIN_CONFIDENCE,
        max_confidence: float = MAX_CONFIDENCE
    ):
        if not 0 <= min_confidence < max_confidence < 1:
            raise InvalidInputError(
                f"Confidence bounds must satisfy 0 <= min < max < 1, got [{min_confidence}, {max_confidence}]"
            )
        self.graph_store = graph_store
        self.min_confidence = min_confidence
        self.max_confidence = max_confidence
        self._locks: Dict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, element_id: UUID) -> asyncio.Lock:
        return self._locks[element_id]

    async def get(self, element_id: UUID) -> TruthValue:
        element = await self.graph_store.get_element(element_id)
        return element.truth

    async def revise_element(self, element_id: UUID, evidence: TruthValue) -> Tuple[TruthValue, TruthValue]:
        """Full revision of an element with new evidence. Returns (old, new)."""
        async with self.lock_for(element_id):
            old = await self.get(element_id)
            new = revise(old, evidence, self.min_confidence, self.max_confidence)
            await self.graph_store.update_truth(element_id, new)
        logger.debug(
            f"Revision [{element_id}]: {old.frequency:.2f}/{old.confidence:.2f} → "
            f"{new.frequency:.2f}/{new.confidence:.2f}"
        )
        return old, new

    async def nudge_element(self, element_id: UUID, delta: float) -> Tuple[TruthValue, TruthValue]:
        """Additive confidence update of an element. Returns (old, new)."""
        async with self.lock_for(element_id):
            old = await self.get(element_id)
            new = apply_delta(old, delta, self.min_confidence, self.max_confidence)
            await self.graph_store.update_truth(element_id, new)
        logger.debug(f"Confidence update [{element_id}]: {old.confidence:.2f} → {new.confidence:.2f} (Δ{delta:+.3f})")
        return old, new

    async def recompute(
        self,
        element_id: UUID,
        prior: TruthValue,
        polarities: list,
        evidence_confidence: Optional[float] = None
    ) -> TruthValue:
        """
        Rebuilds an element's truth value from a prior and its full feedback history.

        Args:
            element_id: Element to rewrite
            prior: Truth value before any feedback was applied
            polarities: Feedback polarities in the order they were received
            evidence_confidence: Override for the fixed per-event evidence confidence

        Returns:
            The recomputed truth value, which is also persisted
        """
        truth = clamp_truth(prior.frequency, prior.confidence, self.min_confidence, self.max_confidence)
        for polarity in polarities:
            evidence = Polarity.parse(polarity).evidence()
            if evidence_confidence is not None:
                evidence = TruthValue(evidence.frequency, evidence_confidence)
            truth = revise(truth, evidence, self.min_confidence, self.max_confidence)

        async with self.lock_for(element_id):
            await self.graph_store.update_truth(element_id, truth)
        logger.info(f"Recomputed [{element_id}] from {len(polarities)} feedback events: {truth}")
        return truth
