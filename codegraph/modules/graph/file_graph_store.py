"""
JSON-file knowledge graph.

Layout:
    {
      "elements":  [{"id": ..., "name": ..., "category": ..., "design_system": ..., "truth": {...}, ...}],
      "relations": [{"source": ..., "target": ..., "kind": "SIMILAR_TO", "weight": 0.8}]
    }

Relations of any kind count toward an element's degree; only SIMILAR_TO and
CAN_REPLACE are returned for propagation. SIMILAR_TO is symmetric.
"""

import asyncio
import json
import logging
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from filelock import FileLock

from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.types.common_types import Element, PropagationRelation, RelationKind, TruthValue
from codegraph.utils.exceptions import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")


class FileGraphStore(GraphStoreInterface):
    def __init__(self, path: Optional[str] = None, autosave: bool = True):
        self.path = Path(path) if path else None
        self.autosave = autosave
        self._elements: Dict[UUID, Element] = {}
        self._relations: List[Dict[str, Any]] = []
        if self.path is not None and self.path.exists():
            self._load()

    def _load(self):
        with FileLock(str(self.path) + ".lock", timeout=10):
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        self._elements = {}
        for raw in data.get("elements", []):
            element = Element.from_dict(raw)
            self._elements[element.id] = element
        self._relations = [
            {
                "source": UUID(str(r["source"])),
                "target": UUID(str(r["target"])),
                "kind": r.get("kind", "RELATED_TO"),
                "weight": float(r.get("weight", 1.0))
            }
            for r in data.get("relations", [])
        ]
        logger.info(f"Loaded graph from {self.path}: {len(self._elements)} elements, {len(self._relations)} relations")

    def _save_sync(self):
        lock_path = str(self.path) + ".lock"
        with FileLock(lock_path, timeout=10):
            self.path.parent.mkdir(exist_ok=True, parents=True)
            # Write to temp file first then rename (atomic operation)
            temp_path = self.path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            temp_path.replace(self.path)

    async def save(self):
        if self.path is None:
            return
        await asyncio.to_thread(self._save_sync)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elements": [e.to_dict() for e in self._elements.values()],
            "relations": [
                {"source": str(r["source"]), "target": str(r["target"]), "kind": r["kind"], "weight": r["weight"]}
                for r in self._relations
            ]
        }

    def add_element(self, element: Element) -> Element:
        self._elements[element.id] = element
        return element

    def add_relation(self, source: UUID, target: UUID, kind: str = "SIMILAR_TO", weight: float = 1.0):
        if source not in self._elements or target not in self._elements:
            raise NotFoundError(f"Cannot relate unknown elements {source} -> {target}")
        if kind in RelationKind.__members__ and not 0 < weight <= 1:
            raise InvalidInputError(f"Relation weight must be in (0, 1], got {weight}")
        self._relations.append({"source": source, "target": target, "kind": kind, "weight": weight})

    def degree(self, element_id: UUID) -> int:
        return sum(1 for r in self._relations if r["source"] == element_id or r["target"] == element_id)

    async def get_element(self, element_id: UUID) -> Element:
        element = self._elements.get(element_id)
        if element is None:
            raise NotFoundError(f"Element {element_id} not found")
        element.degree = self.degree(element_id)
        return element

    async def get_relations(self, element_id: UUID) -> List[PropagationRelation]:
        if element_id not in self._elements:
            raise NotFoundError(f"Element {element_id} not found")
        relations = []
        for r in self._relations:
            if r["kind"] not in RelationKind.__members__:
                continue
            kind = RelationKind[r["kind"]]
            if r["source"] == element_id:
                relations.append(PropagationRelation(element_id, r["target"], kind, r["weight"]))
            elif r["target"] == element_id and kind == RelationKind.SIMILAR_TO:
                relations.append(PropagationRelation(element_id, r["source"], kind, r["weight"]))
        return relations

    async def update_truth(self, element_id: UUID, truth: TruthValue) -> None:
        element = self._elements.get(element_id)
        if element is None:
            raise NotFoundError(f"Element {element_id} not found")
        element.truth = truth
        if self.autosave:
            await self.save()

    async def find_by_terms(self, terms: List[str], limit: int = 20) -> List[Tuple[UUID, int]]:
        wanted = {t.lower() for t in terms if t}
        if not wanted:
            return []

        matches = []
        for element in self._elements.values():
            vocabulary = {element.category.lower()}
            vocabulary.update(_TOKEN.findall(element.name.lower()))
            vocabulary.update(t.lower() for t in element.tags)
            hits = len(wanted & vocabulary)
            if hits:
                matches.append((hits, self.degree(element.id), element.id))

        matches.sort(key=lambda m: (-m[0], -m[1], str(m[2])))
        return [(element_id, degree) for _, degree, element_id in matches[:limit]]

    async def count_by_label(self) -> Dict[str, int]:
        counts = Counter(r["kind"] for r in self._relations)
        counts["UIElement"] = len(self._elements)
        return dict(counts)

    async def count_by_category(self) -> Dict[str, int]:
        return dict(Counter(e.category for e in self._elements.values()))

    async def count_by_design_system(self) -> Dict[str, int]:
        return dict(Counter(e.design_system for e in self._elements.values()))
