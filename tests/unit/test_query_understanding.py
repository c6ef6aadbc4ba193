"""
Unit Tests for QueryProcessor and Narsese translation
"""

import pytest

from codegraph.core.types.common_types import NarseseStatement, TruthValue
from codegraph.modules.reasoning.narsese import (
    NarseseTranslator,
    extract_search_terms,
    parse_ona_response,
    truth_for_terms,
)
from codegraph.modules.retrieval.query_processor import Intent, QueryProcessor


class TestQueryProcessor:
    """Test intent, component and attribute extraction."""

    @pytest.fixture
    def processor(self):
        return QueryProcessor()

    @pytest.mark.parametrize("query,intent", [
        ("create a login form", Intent.CREATE),
        ("Build me a pricing table", Intent.CREATE),
        ("change the navbar color", Intent.MODIFY),
        ("show dark modals", Intent.FIND),
        ("make and then update a card", Intent.CREATE),
    ])
    def test_detect_intent(self, processor, query, intent):
        assert processor.detect_intent(query) == intent

    def test_components_and_attributes(self, processor):
        processed = processor.process("Responsive dark navigation with a primary button")
        assert processed.component_types == ["button", "navbar"]
        assert processed.attributes == ["responsive", "dark", "primary"]

    def test_synonyms(self, processor):
        processed = processor.process("a popup dialog with a text field")
        assert "modal" in processed.component_types
        assert "input" in processed.component_types

    def test_context_terms_skip_stop_words(self, processor):
        processed = processor.process("find a checkout card for the shop")
        assert processed.context_terms == ["checkout", "shop"]
        assert processed.search_terms == ["card", "checkout", "shop"]

    def test_empty_query(self, processor):
        processed = processor.process("")
        assert processed.intent == Intent.FIND
        assert processed.search_terms == []


class TestNarseseTranslator:
    """Test query to Narsese statements."""

    def test_statements_and_truth(self):
        statements = NarseseTranslator().translate("create a dark button")
        by_text = {s.statement: s.truth for s in statements}

        assert by_text["<query --> [create]>"] == TruthValue(1.0, 0.9)
        assert by_text["<button --> component>"] == TruthValue(1.0, 0.9)
        assert by_text["<query --> button>"] == TruthValue(1.0, 0.8)
        assert by_text["<query --> [dark]>"] == TruthValue(1.0, 0.7)
        assert by_text["<(button * dark) --> has_attribute>"] == TruthValue(1.0, 0.6)

    def test_narsese_rendering(self):
        statement = NarseseStatement("<button --> component>", TruthValue(1.0, 0.9))
        assert statement.to_narsese() == "<button --> component>. %1.00;0.90%"

    def test_search_terms(self):
        statements = NarseseTranslator().translate("create a dark button")
        assert extract_search_terms(statements) == ["create", "button", "dark"]


class TestOnaParsing:
    """Test parsing of raw ONA output."""

    def test_answer_and_derived(self):
        output = (
            "Answer: <query --> button>. creationTime=3 Truth: frequency=1.000000, confidence=0.810000\n"
            "Derived: <button --> [dark]>. Priority=0.1 Truth: frequency=0.900000 confidence=0.450000\n"
            "Input: <query --> card>. Truth: frequency=1.0, confidence=0.9\n"
        )
        statements = parse_ona_response(output)

        assert [s.statement for s in statements] == ["<query --> button>", "<button --> [dark]>"]
        assert statements[0].truth == TruthValue(1.0, 0.81)
        assert statements[1].truth.confidence == pytest.approx(0.45)

    def test_no_answers(self):
        assert parse_ona_response("Input: <a --> b>.\ndone with 100 cycles") == []


class TestTruthForTerms:
    """Test per-element statement lookup."""

    @pytest.fixture
    def statements(self):
        return [
            NarseseStatement("<button --> component>", TruthValue(1.0, 0.9)),
            NarseseStatement("<query --> [dark]>", TruthValue(1.0, 0.7)),
        ]

    def test_most_confident_match(self, statements):
        assert truth_for_terms(["button", "Icon Button", "dark"], statements) == TruthValue(1.0, 0.9)

    def test_whole_word_match_only(self, statements):
        assert truth_for_terms(["butt"], statements) is None

    def test_nothing_matches(self, statements):
        assert truth_for_terms(["card", ""], statements) is None
        assert truth_for_terms(["button"], []) is None
