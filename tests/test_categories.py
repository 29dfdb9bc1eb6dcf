import random

import pytest

from docreview.review.categories import (
    OTHER_CATEGORY,
    CategoryPartitioner,
    ProposedCategory,
    normalize_proposal,
    split_checklist_evenly,
)
from docreview.review.models import ChecklistItem
from docreview.services.llm_client import ContextLengthExceededError, LLMCallError, LLMOutputError

from .conftest import ScriptedGenerator, run


def make_items(count: int) -> list[ChecklistItem]:
    return [ChecklistItem(id=idx, session_id="s1", content=f"item {idx}") for idx in range(1, count + 1)]


def proposal(*groups):
    return [ProposedCategory(name=name, checklist_ids=ids) for name, ids in groups]


def assert_partition(categories, items, max_size):
    ids = [item.id for category in categories for item in category.items]
    assert sorted(ids) == sorted(item.id for item in items)
    assert len(ids) == len(set(ids))
    assert all(0 < len(category.items) <= max_size for category in categories)


def test_split_evenly_balances_part_sizes():
    categories = split_checklist_evenly(make_items(7), 3)
    assert [len(c.items) for c in categories] == [3, 2, 2]
    assert [c.name for c in categories] == ["Part 1", "Part 2", "Part 3"]
    assert [i.id for c in categories for i in c.items] == list(range(1, 8))


def test_split_evenly_edge_cases():
    assert split_checklist_evenly([], 3) == []
    assert [len(c.items) for c in split_checklist_evenly(make_items(6), 3)] == [3, 3]
    with pytest.raises(ValueError):
        split_checklist_evenly(make_items(2), 0)


def test_unassigned_items_go_to_other():
    items = make_items(4)
    categories = normalize_proposal(items, proposal(("Dates", [1, 2])), 3)
    assert [(c.name, c.item_ids) for c in categories] == [("Dates", [1, 2]), (OTHER_CATEGORY, [3, 4])]


def test_first_claim_wins_and_duplicates_are_dropped():
    items = make_items(4)
    categories = normalize_proposal(
        items,
        proposal(("Format", [1, 1, 2]), ("Content", [2, 3, 4]), ("Echo", [1, 3])),
        3,
    )
    assert [(c.name, c.item_ids) for c in categories] == [("Format", [1, 2]), ("Content", [3, 4])]


def test_unknown_ids_are_ignored():
    items = make_items(2)
    categories = normalize_proposal(items, proposal(("All", [1, 99, 2])), 3)
    assert [(c.name, c.item_ids) for c in categories] == [("All", [1, 2])]


def test_oversized_category_is_split_into_parts():
    items = make_items(7)
    categories = normalize_proposal(items, proposal(("Legal", [1, 2, 3, 4, 5, 6, 7])), 3)
    assert [(c.name, c.item_ids) for c in categories] == [
        ("Legal", [1, 2, 3]),
        ("Legal (Part 2)", [4, 5, 6]),
        ("Legal (Part 3)", [7]),
    ]


def test_partition_coverage_for_arbitrary_proposals():
    rng = random.Random(1234)
    for _ in range(200):
        items = make_items(rng.randint(1, 25))
        max_size = rng.randint(1, 6)
        groups = []
        for idx in range(rng.randint(0, 6)):
            ids = [rng.randint(1, len(items) + 3) for _ in range(rng.randint(0, 10))]
            groups.append((f"cat {idx}", ids))
        assert_partition(normalize_proposal(items, proposal(*groups), max_size), items, max_size)


def test_partitioner_uses_model_proposal():
    items = make_items(5)
    generator = ScriptedGenerator(
        [{"categories": [{"name": "Dates", "checklistIds": [5, 4]}, {"name": "Names", "checklistIds": [1, 2, 3]}]}]
    )
    partitioner = CategoryPartitioner(generator, max_items_per_category=3, max_categories=20)

    categories = run(partitioner.partition(items))

    assert [(c.name, c.item_ids) for c in categories] == [("Dates", [5, 4]), ("Names", [1, 2, 3])]
    prompt = generator.calls[0]["messages"][0]["content"]
    assert "up to 20 meaningful categories" in prompt
    assert "no more than 3 checklist items" in prompt
    assert "ID: 5 - item 5" in generator.calls[0]["messages"][1]["content"]


@pytest.mark.parametrize(
    "failure",
    [
        LLMCallError("timeout"),
        ContextLengthExceededError("too long"),
        LLMOutputError("garbage", raw_text="{"),
    ],
    ids=["call", "context-length", "output"],
)
def test_partitioner_falls_back_when_the_model_fails(failure):
    items = make_items(8)
    partitioner = CategoryPartitioner(ScriptedGenerator([failure]), max_items_per_category=3)

    categories = run(partitioner.partition(items))

    assert [c.name for c in categories] == ["Part 1", "Part 2", "Part 3"]
    assert_partition(categories, items, 3)


def test_partitioner_falls_back_on_empty_proposal():
    items = make_items(4)
    partitioner = CategoryPartitioner(ScriptedGenerator([{"categories": []}]), max_items_per_category=3)

    categories = run(partitioner.partition(items))

    assert [len(c.items) for c in categories] == [2, 2]


def test_partitioner_skips_the_model_for_single_item_categories():
    generator = ScriptedGenerator([])
    partitioner = CategoryPartitioner(generator, max_items_per_category=1)

    categories = run(partitioner.partition(make_items(3)))

    assert [c.item_ids for c in categories] == [[1], [2], [3]]
    assert generator.calls == []


def test_partitioner_propagates_unexpected_errors():
    partitioner = CategoryPartitioner(ScriptedGenerator([KeyError("bug")]), max_items_per_category=3)
    with pytest.raises(KeyError):
        run(partitioner.partition(make_items(2)))


def test_partitioner_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        CategoryPartitioner(ScriptedGenerator(), max_items_per_category=0)
