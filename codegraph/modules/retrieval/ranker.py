"""
Hybrid ranking: fuses vector similarity, NARS confidence and graph connectivity.

    final_score = a * similarity + b * narsese_confidence + c * normalize_connectivity(degree)

A signal missing for an element (its subsystem was degraded or simply did not
return it) takes a neutral value instead of zero.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Optional, Tuple

from codegraph.core.types.common_types import ResultSource, ScoredElement
from codegraph.modules.feedback.reward import DEFAULT_CONNECTIVITY_K, normalize_connectivity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankingWeights:
    similarity: float = 0.3
    confidence: float = 0.5
    connectivity: float = 0.2
    neutral_similarity: float = 0.5
    neutral_confidence: float = 0.5
    neutral_connectivity: float = 0.5
    connectivity_k: float = DEFAULT_CONNECTIVITY_K

    @classmethod
    def from_settings(cls, ranking) -> "RankingWeights":
        return cls(
            similarity=ranking.similarity_weight,
            confidence=ranking.confidence_weight,
            connectivity=ranking.connectivity_weight,
            neutral_similarity=ranking.neutral_similarity,
            neutral_confidence=ranking.neutral_confidence,
            neutral_connectivity=ranking.neutral_connectivity,
            connectivity_k=ranking.connectivity_k
        )

    def normalized(self) -> Tuple[float, float, float]:
        total = self.similarity + self.confidence + self.connectivity
        if total <= 0:
            return (1 / 3, 1 / 3, 1 / 3)
        return (self.similarity / total, self.confidence / total, self.connectivity / total)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _best_by_id(hits: Iterable[Tuple[Hashable, float]]) -> Dict[Hashable, float]:
    """Collapses duplicate ids, keeping the highest value, in first-seen order."""
    best: Dict[Hashable, float] = {}
    for element_id, value in hits:
        if element_id not in best or value > best[element_id]:
            best[element_id] = value
    return best


class HybridRanker:
    def __init__(self, weights: Optional[RankingWeights] = None):
        self.weights = weights or RankingWeights()

    def rank(
        self,
        vector_hits: Iterable[Tuple[Hashable, float]],
        graph_hits: Iterable[Tuple[Hashable, int]],
        narsese_confidences: Dict[Hashable, float],
        limit: int
    ) -> List[ScoredElement]:
        """
        Rank the union of vector and graph hits.

        Args:
            vector_hits: (element_id, similarity) pairs
            graph_hits: (element_id, degree) pairs
            narsese_confidences: element_id -> confidence; empty when reasoning was unavailable
            limit: Maximum number of results

        Returns:
            Results ordered by final score, then narsese confidence, then element id.
            Every result is tagged DEGRADED when narsese_confidences is empty.
        """
        if limit <= 0:
            return []

        w_sim, w_conf, w_conn = self.weights.normalized()
        similarities = _best_by_id(vector_hits)
        degrees = _best_by_id(graph_hits)
        reasoning_available = bool(narsese_confidences)

        scored = []
        for element_id in list(similarities) + [i for i in degrees if i not in similarities]:
            in_vector = element_id in similarities
            in_graph = element_id in degrees

            similarity = _clamp01(similarities[element_id]) if in_vector else self.weights.neutral_similarity
            confidence = _clamp01(narsese_confidences.get(element_id, self.weights.neutral_confidence))
            degree = int(degrees.get(element_id, 0))
            connectivity = (
                normalize_connectivity(degree, self.weights.connectivity_k)
                if in_graph else self.weights.neutral_connectivity
            )

            if not reasoning_available:
                source = ResultSource.DEGRADED
            elif in_vector and in_graph:
                source = ResultSource.BOTH
            elif in_vector:
                source = ResultSource.VECTOR
            else:
                source = ResultSource.GRAPH

            scored.append(ScoredElement(
                element_id=element_id,
                semantic_similarity=similarity,
                narsese_confidence=confidence,
                graph_degree=degree,
                final_score=_clamp01(w_sim * similarity + w_conf * confidence + w_conn * connectivity),
                source=source
            ))

        scored.sort(key=lambda s: (-s.final_score, -s.narsese_confidence, str(s.element_id)))
        logger.debug(
            f"Ranked {len(scored)} candidates ({len(similarities)} vector, {len(degrees)} graph), "
            f"returning {min(limit, len(scored))}"
        )
        return scored[:limit]


def rank(
    vector_hits: Iterable[Tuple[Hashable, float]],
    graph_hits: Iterable[Tuple[Hashable, int]],
    narsese_confidences: Dict[Hashable, float],
    limit: int,
    weights: Optional[RankingWeights] = None
) -> List[ScoredElement]:
    return HybridRanker(weights).rank(vector_hits, graph_hits, narsese_confidences, limit)
