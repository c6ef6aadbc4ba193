"""
Rule-based query understanding: intent, component types, attributes and leftover context words.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Intent(Enum):
    CREATE = "create"
    FIND = "find"
    MODIFY = "modify"


INTENT_PATTERNS = {
    Intent.CREATE: re.compile(r"\b(create|make|build|generate|add|new)\b", re.IGNORECASE),
    Intent.MODIFY: re.compile(r"\b(change|modify|update|edit|fix|improve)\b", re.IGNORECASE),
}

COMPONENT_PATTERNS: List[Tuple[str, "re.Pattern"]] = [
    (name, re.compile(pattern, re.IGNORECASE)) for name, pattern in [
        ("button", r"\bbuttons?\b"),
        ("form", r"\bforms?\b"),
        ("card", r"\bcards?\b"),
        ("navbar", r"\b(navbars?|nav|navigation)\b"),
        ("modal", r"\b(modals?|dialogs?|popups?)\b"),
        ("table", r"\btables?\b"),
        ("list", r"\blists?\b"),
        ("input", r"\b(inputs?|text\s*fields?)\b"),
        ("dropdown", r"\b(dropdowns?|selects?)\b"),
        ("checkbox", r"\bcheckbox(es)?\b"),
        ("radio", r"\bradio\s*(buttons?)?\b"),
        ("slider", r"\bsliders?\b"),
        ("tabs", r"\btabs?\b"),
        ("accordion", r"\baccordions?\b"),
        ("carousel", r"\bcarousels?\b"),
        ("header", r"\bheaders?\b"),
        ("footer", r"\bfooters?\b"),
        ("sidebar", r"\bsidebars?\b"),
        ("menu", r"\bmenus?\b"),
        ("breadcrumb", r"\bbreadcrumbs?\b"),
        ("pagination", r"\bpaginations?\b"),
        ("tooltip", r"\btooltips?\b"),
        ("toast", r"\b(toasts?|notifications?)\b"),
        ("avatar", r"\bavatars?\b"),
        ("badge", r"\bbadges?\b"),
        ("alert", r"\balerts?\b"),
        ("progress", r"\b(progress\s*bars?|loaders?)\b"),
        ("hero", r"\bhero(es)?\b"),
        ("pricing", r"\bpricing\b"),
    ]
]

ATTRIBUTE_PATTERNS: List[Tuple[str, "re.Pattern"]] = [
    (name, re.compile(pattern, re.IGNORECASE)) for name, pattern in [
        ("responsive", r"\bresponsive\b"),
        ("dark", r"\b(dark|dark\s*mode|dark\s*theme)\b"),
        ("light", r"\b(light|light\s*mode|light\s*theme)\b"),
        ("animated", r"\b(animat\w*|transitions?)\b"),
        ("accessible", r"\b(accessib\w*|a11y|aria)\b"),
        ("primary", r"\bprimary\b"),
        ("secondary", r"\bsecondary\b"),
        ("large", r"\b(large|big|xl)\b"),
        ("small", r"\b(small|tiny|xs|mini)\b"),
        ("medium", r"\b(medium|md)\b"),
        ("centered", r"\bcenter(ed)?\b"),
        ("rounded", r"\brounded\b"),
        ("outlined", r"\b(outlined?|bordered?)\b"),
        ("filled", r"\bfilled\b"),
        ("disabled", r"\bdisabled\b"),
        ("loading", r"\bloading\b"),
        ("icon", r"\bicons?\b"),
        ("gradient", r"\bgradients?\b"),
        ("shadow", r"\bshadows?\b"),
        ("hover", r"\bhover\b"),
        ("sticky", r"\bsticky\b"),
        ("fixed", r"\bfixed\b"),
        ("fullwidth", r"\b(full\s*width|full-width)\b"),
        ("transparent", r"\btransparent\b"),
    ]
]

STOP_WORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need", "dare",
    "ought", "used", "to", "of", "in", "for", "on", "with", "at", "by",
    "from", "as", "into", "through", "during", "before", "after", "above",
    "below", "between", "under", "again", "further", "then", "once", "here",
    "there", "when", "where", "why", "how", "all", "each", "few", "more",
    "most", "other", "some", "such", "no", "nor", "not", "only", "own",
    "same", "so", "than", "too", "very", "just", "and", "but", "if", "or",
    "because", "until", "while", "me", "i", "my", "we", "our", "you", "your",
    "it", "its", "that", "this", "these", "those", "what", "which", "who",
    "create", "make", "build", "generate", "add", "find", "search", "show",
    "get", "list", "display", "give", "change", "modify", "update", "edit",
    "please", "want", "like",
})

_WORD = re.compile(r"\b[a-zA-Z]{3,}\b")


@dataclass
class ProcessedQuery:
    original: str
    intent: Intent
    component_types: List[str] = field(default_factory=list)
    attributes: List[str] = field(default_factory=list)
    context_terms: List[str] = field(default_factory=list)

    @property
    def search_terms(self) -> List[str]:
        return self.component_types + self.attributes + self.context_terms


class QueryProcessor:
    def process(self, query: str) -> ProcessedQuery:
        components = [name for name, pattern in COMPONENT_PATTERNS if pattern.search(query)]
        attributes = [name for name, pattern in ATTRIBUTE_PATTERNS if pattern.search(query)]
        processed = ProcessedQuery(
            original=query,
            intent=self.detect_intent(query),
            component_types=components,
            attributes=attributes,
            context_terms=self.extract_context(query, components, attributes)
        )
        logger.debug(
            f"Processed query '{query}': intent={processed.intent.value}, "
            f"components={components}, attributes={attributes}"
        )
        return processed

    @staticmethod
    def detect_intent(query: str) -> Intent:
        # create wins over modify; anything else is a lookup
        for intent in (Intent.CREATE, Intent.MODIFY):
            if INTENT_PATTERNS[intent].search(query):
                return intent
        return Intent.FIND

    @staticmethod
    def extract_context(query: str, components: List[str], attributes: List[str]) -> List[str]:
        seen = set(components) | set(attributes)
        context = []
        for match in _WORD.finditer(query):
            word = match.group(0).lower()
            if word in STOP_WORDS or word in seen:
                continue
            seen.add(word)
            context.append(word)
        return context
