from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID, uuid4
import logging

from codegraph.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.01
MAX_CONFIDENCE = 0.99

# Confidence carried by a single thumbs up/down, fixed rather than learned
FEEDBACK_EVIDENCE_CONFIDENCE = 0.8


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class TruthValue:
    """NARS truth value: how often a statement held (frequency) and how much evidence backs it (confidence)."""
    frequency: float = 1.0
    confidence: float = 0.5

    def __post_init__(self):
        object.__setattr__(self, "frequency", _clamp(float(self.frequency), 0.0, 1.0))
        object.__setattr__(self, "confidence", _clamp(float(self.confidence), 0.0, MAX_CONFIDENCE))

    def expectation(self) -> float:
        return self.confidence * (self.frequency - 0.5) + 0.5

    def to_dict(self) -> Dict[str, float]:
        return {"frequency": self.frequency, "confidence": self.confidence}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TruthValue":
        return cls(frequency=data.get("frequency", 1.0), confidence=data.get("confidence", 0.5))

    def __str__(self) -> str:
        return f"%{self.frequency:.2f};{self.confidence:.2f}%"


class Polarity(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"

    @classmethod
    def parse(cls, value: Union[str, "Polarity"]) -> "Polarity":
        """Accepts enum members, their values and the thumbs_up/thumbs_down aliases."""
        if isinstance(value, Polarity):
            return value
        normalized = str(value).strip().lower()
        aliases = {
            "positive": cls.POSITIVE,
            "thumbs_up": cls.POSITIVE,
            "thumbsup": cls.POSITIVE,
            "up": cls.POSITIVE,
            "negative": cls.NEGATIVE,
            "thumbs_down": cls.NEGATIVE,
            "thumbsdown": cls.NEGATIVE,
            "down": cls.NEGATIVE,
        }
        if normalized not in aliases:
            raise InvalidInputError(f"Unknown feedback polarity '{value}'")
        return aliases[normalized]

    @property
    def is_positive(self) -> bool:
        return self is Polarity.POSITIVE

    def evidence(self) -> TruthValue:
        frequency = 1.0 if self.is_positive else 0.0
        return TruthValue(frequency=frequency, confidence=FEEDBACK_EVIDENCE_CONFIDENCE)

    def confidence_delta(self) -> float:
        return 0.1 if self.is_positive else -0.15


@dataclass(frozen=True)
class FeedbackEvent:
    target_element: UUID
    polarity: Polarity
    query_context: Optional[str] = None
    comment: Optional[str] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        # Malformed feedback is rejected here, before it can reach the graph
        if not isinstance(self.target_element, UUID):
            try:
                target = UUID(str(self.target_element))
            except ValueError as e:
                raise InvalidInputError(f"Invalid target element id '{self.target_element}'") from e
            object.__setattr__(self, "target_element", target)
        object.__setattr__(self, "polarity", Polarity.parse(self.polarity))

    @classmethod
    def create(
        cls,
        target_element: Union[str, UUID],
        polarity: Union[str, Polarity],
        query_context: Optional[str] = None,
        comment: Optional[str] = None
    ) -> "FeedbackEvent":
        """Builds an event from loosely typed input, raising InvalidInputError on bad values."""
        return cls(
            target_element=target_element,
            polarity=polarity,
            query_context=query_context,
            comment=comment
        )


class RelationKind(Enum):
    SIMILAR_TO = "SIMILAR_TO"
    CAN_REPLACE = "CAN_REPLACE"


@dataclass(frozen=True)
class PropagationRelation:
    source: UUID
    target: UUID
    relation_kind: RelationKind
    base_weight: float = 1.0

    def __post_init__(self):
        if not 0 < self.base_weight <= 1:
            raise InvalidInputError(
                f"Relation weight must be in (0, 1], got {self.base_weight} for {self.source} -> {self.target}"
            )


@dataclass
class Element:
    """A UI component node in the knowledge graph."""
    id: UUID
    name: str
    category: str
    design_system: str = "custom"
    truth: TruthValue = field(default_factory=TruthValue)
    tags: List[str] = field(default_factory=list)
    css_classes: List[str] = field(default_factory=list)
    degree: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["id"] = str(self.id)
        data["truth"] = self.truth.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Element":
        return cls(
            id=UUID(str(data["id"])),
            name=data.get("name", ""),
            category=data.get("category", ""),
            design_system=data.get("design_system", "custom"),
            truth=TruthValue.from_dict(data.get("truth", {})),
            tags=list(data.get("tags", [])),
            css_classes=list(data.get("css_classes", [])),
            degree=int(data.get("degree", 0))
        )


class ResultSource(Enum):
    VECTOR = "vector"
    GRAPH = "graph"
    BOTH = "both"
    DEGRADED = "degraded"


@dataclass
class ScoredElement:
    element_id: UUID
    semantic_similarity: float
    narsese_confidence: float
    graph_degree: int
    final_score: float
    source: ResultSource

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element_id": str(self.element_id),
            "semantic_similarity": self.semantic_similarity,
            "narsese_confidence": self.narsese_confidence,
            "graph_degree": self.graph_degree,
            "final_score": self.final_score,
            "source": self.source.value
        }


@dataclass(frozen=True)
class NarseseStatement:
    statement: str
    truth: TruthValue = field(default_factory=lambda: TruthValue(1.0, 0.9))

    def to_narsese(self) -> str:
        """Renders in ONA input syntax, e.g. '<button --> component>. %1.00;0.90%'"""
        return f"{self.statement}. {self.truth}"


class ServiceType(Enum):
    GRAPH = "graph"
    VECTOR = "vector"
    REASONER = "reasoner"
    LLM = "llm"


class ServiceHealth(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class OperatingMode(Enum):
    FULL = "full"
    PARTIAL_VECTOR_ONLY = "partial_vector_only"
    PARTIAL_GRAPH_ONLY = "partial_graph_only"
    CACHED_ONLY = "cached_only"

    def can_serve(self) -> bool:
        return self is not OperatingMode.CACHED_ONLY

    def uses_vector(self) -> bool:
        return self in (OperatingMode.FULL, OperatingMode.PARTIAL_VECTOR_ONLY)

    def uses_graph(self) -> bool:
        return self in (OperatingMode.FULL, OperatingMode.PARTIAL_GRAPH_ONLY)

    def description(self) -> str:
        return {
            OperatingMode.FULL: "All services operational",
            OperatingMode.PARTIAL_VECTOR_ONLY: "Graph unavailable, ranking on vector similarity",
            OperatingMode.PARTIAL_GRAPH_ONLY: "Vector search unavailable, ranking on graph matches",
            OperatingMode.CACHED_ONLY: "Serving cached responses only",
        }[self]


@dataclass
class RankedResults:
    query: str
    results: List[ScoredElement]
    mode: OperatingMode
    degraded: bool = False
    from_cache: bool = False
    failed_services: List[ServiceType] = field(default_factory=list)
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "mode": self.mode.value,
            "degraded": self.degraded,
            "from_cache": self.from_cache,
            "failed_services": [s.value for s in self.failed_services],
            "latency_ms": self.latency_ms
        }
