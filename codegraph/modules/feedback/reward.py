"""
Reward computation for feedback events.

The reward is a bounded scalar for logging and tuning:
- Base confidence (40%): the element's NARS confidence after feedback
- Similarity bonus (30%): confidence of SIMILAR_TO neighbours
- Connectivity bonus (20%): saturating function of graph degree
- Negative penalty (10%): share of negative feedback, subtracted
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple
from uuid import UUID

from codegraph.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

WEIGHT_BASE_CONFIDENCE = 0.40
WEIGHT_SIMILARITY_BONUS = 0.30
WEIGHT_CONNECTIVITY_BONUS = 0.20
WEIGHT_NEGATIVE_PENALTY = 0.10

DEFAULT_CONNECTIVITY_K = 5.0

REWARD_MIN = -1.0
REWARD_MAX = 1.0


def normalize_connectivity(degree: float, k: float = DEFAULT_CONNECTIVITY_K) -> float:
    """degree / (degree + k): 0 at degree 0, monotone, approaches 1 as degree grows."""
    if degree <= 0:
        return 0.0
    return degree / (degree + k)


@dataclass(frozen=True)
class RewardSignals:
    base_confidence: float = 0.0
    similarity_bonus: float = 0.0
    graph_degree: float = 0.0
    negative_penalty: float = 0.0


@dataclass(frozen=True)
class RewardWeights:
    base_confidence: float = WEIGHT_BASE_CONFIDENCE
    similarity_bonus: float = WEIGHT_SIMILARITY_BONUS
    connectivity_bonus: float = WEIGHT_CONNECTIVITY_BONUS
    negative_penalty: float = WEIGHT_NEGATIVE_PENALTY

    def total(self) -> float:
        return self.base_confidence + self.similarity_bonus + self.connectivity_bonus + self.negative_penalty

    def is_valid(self) -> bool:
        return abs(self.total() - 1.0) < 0.001

    def normalized(self) -> "RewardWeights":
        total = self.total()
        if total <= 0:
            return self
        return RewardWeights(
            base_confidence=self.base_confidence / total,
            similarity_bonus=self.similarity_bonus / total,
            connectivity_bonus=self.connectivity_bonus / total,
            negative_penalty=self.negative_penalty / total
        )


@dataclass(frozen=True)
class RewardResult:
    element_id: UUID
    reward: float
    base_component: float
    similarity_component: float
    connectivity_component: float
    penalty_component: float

    def is_high_reward(self) -> bool:
        return self.reward > 0.7

    def is_low_reward(self) -> bool:
        return self.reward < 0.3

    def dominant_factor(self) -> str:
        components = [
            (self.base_component, "base_confidence"),
            (self.similarity_component, "similarity_bonus"),
            (self.connectivity_component, "connectivity_bonus"),
            (self.penalty_component, "negative_penalty"),
        ]
        # max() keeps the first of equal values, so base_confidence wins ties
        return max(components, key=lambda c: c[0])[1]

    def to_dict(self) -> dict:
        return {
            "element_id": str(self.element_id),
            "reward": self.reward,
            "base_component": self.base_component,
            "similarity_component": self.similarity_component,
            "connectivity_component": self.connectivity_component,
            "penalty_component": self.penalty_component,
            "dominant_factor": self.dominant_factor()
        }


def compute_reward(
    element_id: UUID,
    signals: RewardSignals,
    weights: RewardWeights = RewardWeights(),
    connectivity_k: float = DEFAULT_CONNECTIVITY_K
) -> RewardResult:
    base_component = signals.base_confidence * weights.base_confidence
    similarity_component = signals.similarity_bonus * weights.similarity_bonus
    connectivity_component = normalize_connectivity(signals.graph_degree, connectivity_k) * weights.connectivity_bonus
    penalty_component = signals.negative_penalty * weights.negative_penalty

    raw = base_component + similarity_component + connectivity_component - penalty_component
    reward = max(REWARD_MIN, min(REWARD_MAX, raw))

    return RewardResult(
        element_id=element_id,
        reward=reward,
        base_component=base_component,
        similarity_component=similarity_component,
        connectivity_component=connectivity_component,
        penalty_component=penalty_component
    )


class RewardComputer:
    """Holds validated weights and computes rewards for single elements or batches."""

    def __init__(self, weights: RewardWeights = RewardWeights(), connectivity_k: float = DEFAULT_CONNECTIVITY_K):
        if not weights.is_valid():
            raise InvalidInputError(f"Reward weights must sum to 1.0, got {weights.total():.3f}")
        if connectivity_k <= 0:
            raise InvalidInputError("connectivity_k must be positive")
        self.weights = weights
        self.connectivity_k = connectivity_k

    def compute(self, element_id: UUID, signals: RewardSignals) -> RewardResult:
        result = compute_reward(element_id, signals, self.weights, self.connectivity_k)
        logger.debug(
            f"Reward [{element_id}]: {result.reward:.3f} (base={result.base_component:.3f}, "
            f"similarity={result.similarity_component:.3f}, connectivity={result.connectivity_component:.3f}, "
            f"penalty={result.penalty_component:.3f})"
        )
        return result

    def compute_batch(self, items: Iterable[Tuple[UUID, RewardSignals]]) -> List[RewardResult]:
        """Rewards for many elements, highest first."""
        results = [self.compute(element_id, signals) for element_id, signals in items]
        results.sort(key=lambda r: (-r.reward, str(r.element_id)))
        return results
