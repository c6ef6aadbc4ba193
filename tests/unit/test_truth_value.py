"""
Unit Tests for truth-value revision and the per-element store
"""

import asyncio

import pytest

from codegraph.core.types.common_types import Polarity, TruthValue
from codegraph.modules.feedback.truth_value import (
    TruthValueStore,
    apply_delta,
    evidence_weight,
    revise,
)
from codegraph.utils.exceptions import InvalidInputError, NotFoundError


class TestRevision:
    """Test NARS revision of two truth values."""

    def test_positive_evidence_on_trusted_element(self):
        """f=0.9,c=0.5 revised with (1.0, 0.8) gives f=0.98 and c=5/6."""
        revised = revise(TruthValue(0.9, 0.5), TruthValue(1.0, 0.8))
        assert revised.frequency == pytest.approx(0.98, abs=1e-6)
        assert revised.confidence == pytest.approx(5 / 6, abs=1e-6)

    def test_negative_evidence_lowers_frequency(self):
        """Negative evidence pulls frequency toward 0 but still adds confidence."""
        old = TruthValue(1.0, 0.5)
        revised = revise(old, Polarity.NEGATIVE.evidence())
        assert revised.frequency == pytest.approx(0.2, abs=1e-6)
        assert revised.confidence > old.confidence

    def test_revision_is_commutative(self):
        """Order of independent evidence does not matter."""
        a = TruthValue(0.7, 0.4)
        b = TruthValue(0.2, 0.6)
        ab = revise(a, b)
        ba = revise(b, a)
        assert ab.frequency == pytest.approx(ba.frequency)
        assert ab.confidence == pytest.approx(ba.confidence)

    def test_confidence_never_reaches_one(self):
        """Revising two near-certain values stays at the upper clamp."""
        revised = revise(TruthValue(1.0, 0.99), TruthValue(1.0, 0.99))
        assert revised.confidence == pytest.approx(0.99)

    def test_zero_confidence_inputs(self):
        """Two evidence-free values average their frequency and get the minimum confidence."""
        revised = revise(TruthValue(1.0, 0.0), TruthValue(0.0, 0.0))
        assert revised.frequency == pytest.approx(0.5)
        assert revised.confidence == pytest.approx(0.01)

    def test_evidence_weight_is_monotone(self):
        """More confident values carry more evidence."""
        weights = [evidence_weight(c) for c in (0.1, 0.3, 0.5, 0.8, 0.99)]
        assert weights == sorted(weights)
        assert evidence_weight(0.5) == pytest.approx(1.0)


class TestFastPath:
    """Test additive confidence updates."""

    def test_positive_delta(self):
        updated = apply_delta(TruthValue(0.9, 0.5), 0.1)
        assert updated.confidence == pytest.approx(0.6)
        assert updated.frequency == pytest.approx(0.9)

    def test_clamps_to_minimum(self):
        """Confidence never drops below the lower bound."""
        updated = apply_delta(TruthValue(1.0, 0.05), -0.15)
        assert updated.confidence == pytest.approx(0.01)

    def test_clamps_to_maximum(self):
        updated = apply_delta(TruthValue(1.0, 0.95), 0.1)
        assert updated.confidence == pytest.approx(0.99)

    def test_custom_bounds(self):
        updated = apply_delta(TruthValue(1.0, 0.5), 0.4, min_confidence=0.1, max_confidence=0.8)
        assert updated.confidence == pytest.approx(0.8)


class TestTruthValueStore:
    """Test the lock-guarded store on top of a graph."""

    def test_rejects_inverted_bounds(self, graph_store):
        with pytest.raises(InvalidInputError):
            TruthValueStore(graph_store, min_confidence=0.9, max_confidence=0.1)

    def test_rejects_max_of_one(self, graph_store):
        with pytest.raises(InvalidInputError):
            TruthValueStore(graph_store, min_confidence=0.0, max_confidence=1.0)

    @pytest.mark.asyncio
    async def test_revise_element_persists(self, graph_store, ids):
        """Revision result is written back to the graph."""
        store = TruthValueStore(graph_store)
        old, new = await store.revise_element(ids.primary_button, TruthValue(1.0, 0.8))

        assert old == TruthValue(0.9, 0.5)
        assert (await store.get(ids.primary_button)) == new
        assert new.confidence == pytest.approx(5 / 6, abs=1e-6)

    @pytest.mark.asyncio
    async def test_unknown_element(self, graph_store):
        from uuid import uuid4
        store = TruthValueStore(graph_store)
        with pytest.raises(NotFoundError):
            await store.nudge_element(uuid4(), 0.1)

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, graph_store, ids):
        """Ten concurrent nudges on one element all land."""
        store = TruthValueStore(graph_store)
        await asyncio.gather(*(store.nudge_element(ids.icon_button, 0.01) for _ in range(10)))

        truth = await store.get(ids.icon_button)
        assert truth.confidence == pytest.approx(0.6, abs=1e-9)

    @pytest.mark.asyncio
    async def test_recompute_from_history(self, graph_store, ids):
        """Recompute replays polarities through full revision in order."""
        store = TruthValueStore(graph_store)
        truth = await store.recompute(ids.product_card, TruthValue(1.0, 0.5), ["positive"])

        assert truth.frequency == pytest.approx(1.0)
        assert truth.confidence == pytest.approx(5 / 6, abs=1e-6)
        assert (await store.get(ids.product_card)) == truth

    @pytest.mark.asyncio
    async def test_recompute_with_no_history_keeps_prior(self, graph_store, ids):
        store = TruthValueStore(graph_store)
        truth = await store.recompute(ids.product_card, TruthValue(0.4, 0.3), [])
        assert truth == TruthValue(0.4, 0.3)
