"""
Unit Tests for shared domain types and logging setup
"""

import logging
from uuid import UUID, uuid4

import pytest

from codegraph.core.types.common_types import (
    Element,
    FeedbackEvent,
    OperatingMode,
    Polarity,
    PropagationRelation,
    RankedResults,
    RelationKind,
    ResultSource,
    ScoredElement,
    ServiceType,
    TruthValue,
)
from codegraph.utils.exceptions import InvalidInputError
from codegraph.utils.logging_utils import setup_logging


class TestTruthValue:
    """Test construction-time clamping."""

    def test_clamps_out_of_range(self):
        truth = TruthValue(1.4, 1.0)
        assert truth.frequency == 1.0
        assert truth.confidence == 0.99

    def test_expectation(self):
        assert TruthValue(1.0, 0.8).expectation() == pytest.approx(0.9)
        assert TruthValue(0.5, 0.9).expectation() == pytest.approx(0.5)

    def test_dict_round_trip(self):
        truth = TruthValue(0.25, 0.4)
        assert TruthValue.from_dict(truth.to_dict()) == truth


class TestFeedbackEvent:
    """Test polarity parsing and event creation."""

    @pytest.mark.parametrize("raw,expected", [
        ("positive", Polarity.POSITIVE),
        ("THUMBS_UP", Polarity.POSITIVE),
        (" down ", Polarity.NEGATIVE),
        (Polarity.NEGATIVE, Polarity.NEGATIVE),
    ])
    def test_polarity_aliases(self, raw, expected):
        assert Polarity.parse(raw) == expected

    def test_polarity_evidence(self):
        assert Polarity.POSITIVE.evidence() == TruthValue(1.0, 0.8)
        assert Polarity.NEGATIVE.evidence() == TruthValue(0.0, 0.8)
        assert Polarity.NEGATIVE.confidence_delta() == -0.15

    def test_create_from_strings(self):
        element_id = uuid4()
        event = FeedbackEvent.create(str(element_id), "thumbs_down", query_context="dark navbar")
        assert event.target_element == element_id
        assert event.polarity == Polarity.NEGATIVE
        assert event.created_at.tzinfo is not None

    def test_create_rejects_bad_id(self):
        with pytest.raises(InvalidInputError):
            FeedbackEvent.create("not-a-uuid", "positive")

    def test_constructor_coerces_strings(self):
        element_id = uuid4()
        event = FeedbackEvent(str(element_id), "thumbs_down")
        assert event.target_element == element_id
        assert event.polarity is Polarity.NEGATIVE

    @pytest.mark.parametrize("polarity", ["sideways", None, 1])
    def test_constructor_rejects_bad_polarity(self, polarity):
        with pytest.raises(InvalidInputError):
            FeedbackEvent(uuid4(), polarity)

    def test_constructor_rejects_bad_id(self):
        with pytest.raises(InvalidInputError):
            FeedbackEvent(12345, Polarity.POSITIVE)

    def test_events_get_unique_ids(self):
        element_id = uuid4()
        assert FeedbackEvent(element_id, Polarity.POSITIVE).id != FeedbackEvent(element_id, Polarity.POSITIVE).id


class TestGraphTypes:
    """Test relations and elements."""

    @pytest.mark.parametrize("weight", [0.0, -0.5, 1.01])
    def test_relation_weight_bounds(self, weight):
        with pytest.raises(InvalidInputError):
            PropagationRelation(uuid4(), uuid4(), RelationKind.SIMILAR_TO, weight)

    def test_element_round_trip(self):
        element = Element(
            id=UUID(int=7), name="Hero Banner", category="hero", truth=TruthValue(0.8, 0.3),
            tags=["gradient"], css_classes=["hero", "hero--dark"]
        )
        assert Element.from_dict(element.to_dict()) == element


class TestResults:
    """Test result serialization and operating modes."""

    def test_ranked_results_to_dict(self):
        scored = ScoredElement(UUID(int=1), 0.9, 0.8, 3, 0.77, ResultSource.BOTH)
        results = RankedResults(
            query="button", results=[scored], mode=OperatingMode.PARTIAL_GRAPH_ONLY,
            degraded=True, failed_services=[ServiceType.VECTOR]
        )
        data = results.to_dict()
        assert data["mode"] == "partial_graph_only"
        assert data["failed_services"] == ["vector"]
        assert data["results"][0]["source"] == "both"

    def test_mode_capabilities(self):
        assert OperatingMode.FULL.uses_vector() and OperatingMode.FULL.uses_graph()
        assert not OperatingMode.PARTIAL_VECTOR_ONLY.uses_graph()
        assert not OperatingMode.PARTIAL_GRAPH_ONLY.uses_vector()
        assert not OperatingMode.CACHED_ONLY.can_serve()


class TestLoggingSetup:
    """Test root logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        level, handlers = root.level, root.handlers[:]
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_sets_level_and_single_handler(self):
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_invalid_level_defaults_to_info(self):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO
