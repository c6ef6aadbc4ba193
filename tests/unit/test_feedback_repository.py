"""
Unit Tests for FeedbackRepository
"""

from uuid import uuid4

import pytest

from codegraph.core.types.common_types import FeedbackEvent, Polarity, TruthValue
from codegraph.modules.feedback.feedback_repository import FeedbackRepository
from codegraph.modules.feedback.propagation import PropagationResult, PropagationUpdate
from codegraph.utils.exceptions import NotFoundError


@pytest.fixture
def repository(tmp_path):
    return FeedbackRepository(str(tmp_path / "nested" / "feedback.db"))


def result_for(event, neighbour=None):
    updates = [PropagationUpdate(event.target_element, TruthValue(1.0, 0.5), TruthValue(1.0, 0.6), 0)]
    if neighbour is not None:
        updates.append(PropagationUpdate(neighbour, TruthValue(1.0, 0.5), TruthValue(1.0, 0.55), 1))
    return PropagationResult(event_id=event.id, updates=updates)


class TestFeedbackRepository:
    """Test the SQLite audit log."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, repository):
        element, neighbour = uuid4(), uuid4()
        event = FeedbackEvent(element, Polarity.POSITIVE, comment="exactly what I needed")

        await repository.save(event, result_for(event, neighbour), 0.1)
        record = await repository.get(event.id)

        assert record["element_id"] == str(element)
        assert record["comment"] == "exactly what I needed"
        assert record["confidence_delta"] == pytest.approx(0.1)
        assert [u["element_id"] for u in record["updates"]] == [str(element), str(neighbour)]
        assert record["updates"][1]["new_confidence"] == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_get_unknown(self, repository):
        with pytest.raises(NotFoundError):
            await repository.get(uuid4())

    @pytest.mark.asyncio
    async def test_find_by_element(self, repository):
        element = uuid4()
        for polarity in (Polarity.POSITIVE, Polarity.NEGATIVE, Polarity.POSITIVE):
            event = FeedbackEvent(element, polarity)
            await repository.save(event, result_for(event), polarity.confidence_delta())
        other = FeedbackEvent(uuid4(), Polarity.NEGATIVE)
        await repository.save(other, result_for(other), -0.15)

        rows = await repository.find_by_element(element)
        assert len(rows) == 3
        assert len(await repository.find_by_element(element, limit=2)) == 2

    @pytest.mark.asyncio
    async def test_summary_and_negative_ratio(self, repository):
        element = uuid4()
        for polarity in (Polarity.POSITIVE, Polarity.NEGATIVE, Polarity.NEGATIVE, Polarity.NEGATIVE):
            event = FeedbackEvent(element, polarity)
            await repository.save(event, result_for(event), polarity.confidence_delta())

        summary = await repository.summary_for_element(element)
        assert summary.positive_count == 1
        assert summary.negative_count == 3
        assert summary.net_confidence_delta == pytest.approx(0.1 - 0.45)
        assert summary.last_feedback_at is not None
        assert await repository.negative_ratio(element) == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_no_history(self, repository):
        summary = await repository.summary_for_element(uuid4())
        assert summary.total == 0
        assert summary.negative_ratio == 0.0

    @pytest.mark.asyncio
    async def test_metrics(self, repository):
        for polarity in (Polarity.POSITIVE, Polarity.POSITIVE, Polarity.NEGATIVE):
            event = FeedbackEvent(uuid4(), polarity)
            await repository.save(event, result_for(event), polarity.confidence_delta())

        metrics = await repository.metrics()
        assert metrics.total_feedback == 3
        assert metrics.positive_ratio == pytest.approx(2 / 3)
        assert metrics.avg_confidence_delta == pytest.approx((0.1 + 0.1 - 0.15) / 3)

    @pytest.mark.asyncio
    async def test_empty_metrics(self, repository):
        metrics = await repository.metrics()
        assert metrics.total_feedback == 0
        assert metrics.avg_confidence_delta == 0.0

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, repository, tmp_path):
        event = FeedbackEvent(uuid4(), Polarity.NEGATIVE)
        await repository.save(event, result_for(event), -0.15)

        reopened = FeedbackRepository(str(tmp_path / "nested" / "feedback.db"))
        assert (await reopened.get(event.id))["polarity"] == "negative"
