"""Task id -> subtask transition table.

Each transition is a pure function over a MissionDay; nothing here touches
the store, so the compare-and-set loop can re-run them freely.
"""
from __future__ import annotations

from typing import Callable, Dict

from backend.models.mission import MAX_POINTS, MissionDay

TaskTransition = Callable[[MissionDay, int], None]

BUY_ELEMENTS_THRESHOLD = 5


def _flag(section_key: str, subtask: str) -> TaskTransition:
    def apply(day: MissionDay, count: int) -> None:
        setattr(day.section(section_key), subtask, True)

    apply.__name__ = f"mark_{section_key}_{subtask}"
    return apply


def _buy_elements(day: MissionDay, count: int) -> None:
    s1 = day.s1
    s1.buy_elements_count += count
    if s1.buy_elements_count >= BUY_ELEMENTS_THRESHOLD:
        s1.buy5 = True


TASKS: Dict[str, TaskTransition] = {
    "s1_buy5_elements": _buy_elements,
    "s1_buy_shield": _flag("s1", "buy_shield"),
    "s1_claim_production": _flag("s1", "claim_production"),
    "s2_apply_resources": _flag("s2", "apply_resources"),
    "s2_attack_plant": _flag("s2", "attack_plant"),
    "s2_chat_message": _flag("s2", "chat_message"),
    "s3_send_quest": _flag("s3", "send_quest"),
    "s3_place_order": _flag("s3", "place_order"),
    "s3_claim_stake": _flag("s3", "claim_stake"),
    "s4_make_swap": _flag("s4", "make_swap"),
    "s4_collect_star": _flag("s4", "collect_star"),
    "s4_play_arcade": _flag("s4", "play_arcade"),
}

VALID_TASK_IDS = frozenset(TASKS)


def apply_task_progress(day: MissionDay, task_id: str, count: int) -> None:
    TASKS[task_id](day, count)


def award_points(day: MissionDay, now_ms: int) -> int:
    """Ratchet newly complete sections to done and return the points gained."""
    before = day.pts
    award = 0
    for _, section in day.sections():
        if not section.done and section.is_complete():
            section.done = True
            award += section.WEIGHT
    day.pts = min(MAX_POINTS, day.pts + award)
    if day.is_complete and day.completed_at is None:
        day.completed_at = now_ms
    return day.pts - before
