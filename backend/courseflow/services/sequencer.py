"""Curriculum sequencer: flattens a course into one ordered item list.

Every consumer that needs "which item comes where" (free-preview checks,
progress totals, next item to study) goes through :func:`build_sequence`.
Ordering rules:

  1. Modules in the course's own order (``Module.position``).
  2. Inside a module, the explicit ``contents`` entries when there are any.
  3. Otherwise lessons sorted by ``order``, then quizzes sorted by ``order``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from courseflow.db.models import ItemKindEnum

NOT_FOUND = -1


@dataclass(frozen=True)
class OrderedItem:
    """A lesson or quiz at a fixed place in the course sequence."""

    type: ItemKindEnum
    id: int


def _by_order(items: Iterable[Any]) -> list[Any]:
    return sorted(items, key=lambda it: (it.order or 0, it.id))


def module_sequence(module: Any) -> list[OrderedItem]:
    """Ordered lesson/quiz items of a single module."""
    contents = list(module.contents or [])
    if contents:
        out: list[OrderedItem] = []
        for entry in contents:
            ref_id = entry.lesson_id if entry.kind == ItemKindEnum.LESSON else entry.quiz_id
            # Dangling entries (deleted lesson/quiz) are not part of the course
            if ref_id:
                out.append(OrderedItem(ItemKindEnum(entry.kind), int(ref_id)))
        return out

    lessons = [OrderedItem(ItemKindEnum.LESSON, int(l.id)) for l in _by_order(module.lessons or [])]
    quizzes = [OrderedItem(ItemKindEnum.QUIZ, int(q.id)) for q in _by_order(module.quizzes or [])]
    return lessons + quizzes


def build_sequence(course: Any) -> list[OrderedItem]:
    """Flatten all modules of *course* into a single deterministic list."""
    sequence: list[OrderedItem] = []
    for module in course.modules or []:
        sequence.extend(module_sequence(module))
    return sequence


def position_of(
    sequence: Sequence[OrderedItem], item_type: ItemKindEnum | str, item_id: int
) -> int:
    """Index of the item in *sequence*, or ``-1`` when it is not there."""
    target = OrderedItem(ItemKindEnum(item_type), int(item_id))
    for index, item in enumerate(sequence):
        if item == target:
            return index
    return NOT_FOUND


def is_free(position: int, free_item_count: int | None) -> bool:
    """Whether a sequence position is within the free preview."""
    return 0 <= position < (free_item_count or 0)
