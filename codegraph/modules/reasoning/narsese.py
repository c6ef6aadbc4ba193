"""
Narsese translation and ONA output parsing.

Queries are turned into statements such as:
    <query --> [create]>.              %1.00;0.90%
    <button --> component>.            %1.00;0.90%
    <query --> button>.                %1.00;0.80%
    <query --> [dark]>.                %1.00;0.70%
    <(button * dark) --> has_attribute>. %1.00;0.60%
"""

import logging
import re
from typing import Iterable, List, Optional

from codegraph.core.types.common_types import NarseseStatement, TruthValue
from codegraph.modules.retrieval.query_processor import ProcessedQuery, QueryProcessor

logger = logging.getLogger(__name__)

INTENT_TRUTH = TruthValue(1.0, 0.9)
COMPONENT_TRUTH = TruthValue(1.0, 0.9)
QUERY_COMPONENT_TRUTH = TruthValue(1.0, 0.8)
ATTRIBUTE_TRUTH = TruthValue(1.0, 0.7)
HAS_ATTRIBUTE_TRUTH = TruthValue(1.0, 0.6)

_ANSWER = re.compile(
    r"Answer:\s*(.+?)\.\s*creationTime=\d+\s*Truth:\s*frequency=([\d.]+),?\s*confidence=([\d.]+)"
)
_DERIVED = re.compile(
    r"Derived:\s*(.+?)\.?\s*(?:Priority=[\d.]+\s*)?Truth:\s*frequency=([\d.]+),?\s*confidence=([\d.]+)"
)
_SUBJECT = re.compile(r"<(\w+)\s*-->")
_PROPERTY = re.compile(r"\[(\w+)\]")
_TOKEN = re.compile(r"\w+")


class NarseseTranslator:
    """Offline, rule-based query → Narsese translation."""

    def __init__(self, processor: Optional[QueryProcessor] = None):
        self.processor = processor or QueryProcessor()

    def translate(self, query: str) -> List[NarseseStatement]:
        return self.translate_processed(self.processor.process(query))

    def translate_processed(self, processed: ProcessedQuery) -> List[NarseseStatement]:
        statements = [NarseseStatement(f"<query --> [{processed.intent.value}]>", INTENT_TRUTH)]

        for component in processed.component_types:
            statements.append(NarseseStatement(f"<{component} --> component>", COMPONENT_TRUTH))
            statements.append(NarseseStatement(f"<query --> {component}>", QUERY_COMPONENT_TRUTH))

        for attribute in processed.attributes:
            statements.append(NarseseStatement(f"<query --> [{attribute}]>", ATTRIBUTE_TRUTH))

        for component in processed.component_types:
            for attribute in processed.attributes:
                statements.append(
                    NarseseStatement(f"<({component} * {attribute}) --> has_attribute>", HAS_ATTRIBUTE_TRUTH)
                )

        logger.debug(f"Translated '{processed.original}' into {len(statements)} Narsese statements")
        return statements


def _parse_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def parse_ona_response(response: str) -> List[NarseseStatement]:
    """Extracts Answer: and Derived: lines from raw ONA output."""
    statements = []
    for pattern in (_ANSWER, _DERIVED):
        for match in pattern.finditer(response):
            statement = match.group(1).strip().rstrip(".").strip()
            if statement:
                statements.append(NarseseStatement(
                    statement,
                    TruthValue(_parse_float(match.group(2)), _parse_float(match.group(3)))
                ))
    return statements


def extract_search_terms(statements: Iterable[NarseseStatement]) -> List[str]:
    """Subjects of inheritance statements (except 'query') and bracketed properties, in first-seen order."""
    terms: List[str] = []
    for stmt in statements:
        for subject in _SUBJECT.findall(stmt.statement):
            if subject != "query" and subject not in terms:
                terms.append(subject)
        for prop in _PROPERTY.findall(stmt.statement):
            if prop not in terms:
                terms.append(prop)
    return terms


def truth_for_terms(terms: Iterable[str], statements: Iterable[NarseseStatement]) -> Optional[TruthValue]:
    """Truth of the most confident statement mentioning any of the terms as a whole word, or None."""
    wanted = {t.lower() for t in terms if t}
    best: Optional[TruthValue] = None
    for stmt in statements:
        tokens = {t.lower() for t in _TOKEN.findall(stmt.statement)}
        if tokens & wanted:
            if best is None or stmt.truth.confidence > best.confidence:
                best = stmt.truth
    return best
