from __future__ import annotations

import logging
import math
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..services.llm_client import LLMError, TextGenerator
from .models import Category, ChecklistItem
from .prompts import build_classification_prompt, format_checklist

logger = logging.getLogger("docreview")

OTHER_CATEGORY = "Other"


class ProposedCategory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Category name")
    checklist_ids: list[int] = Field(
        alias="checklistIds",
        description="IDs of the checklist items belonging to the category",
    )


class CategoryProposal(BaseModel):
    categories: list[ProposedCategory] = Field(description="Classified categories")


def split_checklist_evenly(items: Sequence[ChecklistItem], max_size: int) -> list[Category]:
    """
    Split ``items`` into the fewest parts of at most ``max_size`` items.

    Part sizes differ by at most one; the first ``len(items) % parts`` parts
    take the extra item.
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    if not items:
        return []

    parts = math.ceil(len(items) / max_size)
    base_size, remainder = divmod(len(items), parts)

    categories: list[Category] = []
    offset = 0
    for idx in range(parts):
        size = base_size + (1 if idx < remainder else 0)
        categories.append(Category(name=f"Part {idx + 1}", items=list(items[offset : offset + size])))
        offset += size
    return categories


def normalize_proposal(
    items: Sequence[ChecklistItem],
    proposal: Sequence[ProposedCategory],
    max_size: int,
) -> list[Category]:
    """
    Turn a model-proposed grouping into a partition of ``items``.

    Unassigned items go to an ``Other`` category, ids claimed by an earlier
    category (or repeated within one) are dropped, ids that are not in
    ``items`` are ignored, and oversized categories are cut into
    ``"<name>"``, ``"<name> (Part 2)"``, ... chunks of at most ``max_size``.
    """
    by_id = {item.id: item for item in items}
    groups = [(category.name, list(category.checklist_ids)) for category in proposal]

    assigned = {item_id for _, ids in groups for item_id in ids}
    unassigned = [item.id for item in items if item.id not in assigned]
    if unassigned:
        groups.append((OTHER_CATEGORY, unassigned))

    seen: set[int] = set()
    categories: list[Category] = []
    for name, ids in groups:
        owned: list[ChecklistItem] = []
        for item_id in ids:
            if item_id in seen or item_id not in by_id:
                continue
            seen.add(item_id)
            owned.append(by_id[item_id])

        for start in range(0, len(owned), max_size):
            part = start // max_size + 1
            chunk_name = name if part == 1 else f"{name} (Part {part})"
            categories.append(Category(name=chunk_name, items=owned[start : start + max_size]))

    return categories


class CategoryPartitioner:
    """Groups checklist items into bounded categories, semantically when the model cooperates."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        max_items_per_category: int = 3,
        max_categories: int = 20,
    ) -> None:
        if max_items_per_category < 1:
            raise ValueError("max_items_per_category must be at least 1")
        self.generator = generator
        self.max_items_per_category = max_items_per_category
        self.max_categories = max_categories

    async def partition(self, items: Sequence[ChecklistItem]) -> list[Category]:
        if not items:
            return []

        if self.max_items_per_category <= 1:
            return split_checklist_evenly(items, self.max_items_per_category)

        try:
            proposal = await self._propose(items)
        except LLMError as exc:
            logger.warning("Checklist categorisation failed, splitting evenly instead: %s", exc)
            return split_checklist_evenly(items, self.max_items_per_category)

        if not proposal.categories:
            logger.warning("Model returned no categories, splitting checklist evenly")
            return split_checklist_evenly(items, self.max_items_per_category)

        categories = normalize_proposal(items, proposal.categories, self.max_items_per_category)
        logger.info("Grouped %s checklist items into %s categories", len(items), len(categories))
        return categories

    async def _propose(self, items: Sequence[ChecklistItem]) -> CategoryProposal:
        messages = [
            {
                "role": "system",
                "content": build_classification_prompt(self.max_items_per_category, self.max_categories),
            },
            {"role": "user", "content": f"checklist items:\n{format_checklist(items)}"},
        ]
        return await self.generator.generate(messages, CategoryProposal)


__all__ = [
    "CategoryPartitioner",
    "CategoryProposal",
    "ProposedCategory",
    "normalize_proposal",
    "split_checklist_evenly",
]
