from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple

MAX_POINTS = 80


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def decode_json_object(raw: Optional[str]) -> Optional[dict]:
    """Parse a persisted JSON object; None when absent or unreadable."""
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


@dataclass
class Section:
    """A group of subtasks; `done` is a one-way ratchet set when all subtasks hold."""

    WEIGHT: ClassVar[int] = 0
    SUBTASKS: ClassVar[Tuple[str, ...]] = ()

    done: bool = False

    def is_complete(self) -> bool:
        return all(getattr(self, name) for name in self.SUBTASKS)

    def to_dict(self) -> Dict[str, Any]:
        data = {_camel(f.name): getattr(self, f.name) for f in fields(self) if f.name != "done"}
        data["done"] = self.done
        return data

    @classmethod
    def from_dict(cls, data: object) -> "Section":
        source = data if isinstance(data, dict) else {}
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = source.get(_camel(f.name))
            if isinstance(f.default, bool):
                values[f.name] = bool(raw)
            else:
                values[f.name] = _counter(raw)
        return cls(**values)


@dataclass
class SectionS1(Section):
    WEIGHT: ClassVar[int] = 20
    SUBTASKS: ClassVar[Tuple[str, ...]] = ("buy5", "buy_shield", "claim_production")

    buy5: bool = False
    buy_elements_count: int = 0
    buy_shield: bool = False
    claim_production: bool = False


@dataclass
class SectionS2(Section):
    WEIGHT: ClassVar[int] = 20
    SUBTASKS: ClassVar[Tuple[str, ...]] = ("apply_resources", "attack_plant", "chat_message")

    apply_resources: bool = False
    attack_plant: bool = False
    chat_message: bool = False


@dataclass
class SectionS3(Section):
    WEIGHT: ClassVar[int] = 10
    SUBTASKS: ClassVar[Tuple[str, ...]] = ("send_quest", "place_order", "claim_stake")

    send_quest: bool = False
    place_order: bool = False
    claim_stake: bool = False


@dataclass
class SectionS4(Section):
    WEIGHT: ClassVar[int] = 30
    SUBTASKS: ClassVar[Tuple[str, ...]] = ("make_swap", "collect_star", "play_arcade")

    make_swap: bool = False
    collect_star: bool = False
    play_arcade: bool = False


SECTION_TYPES = {
    "s1": SectionS1,
    "s2": SectionS2,
    "s3": SectionS3,
    "s4": SectionS4,
}


@dataclass
class MissionDay:
    """One address's mission progress for one UTC day."""

    date: str
    s1: SectionS1 = field(default_factory=SectionS1)
    s2: SectionS2 = field(default_factory=SectionS2)
    s3: SectionS3 = field(default_factory=SectionS3)
    s4: SectionS4 = field(default_factory=SectionS4)
    pts: int = 0
    completed_at: Optional[int] = None  # epoch millis, stamped once at MAX_POINTS

    def sections(self) -> Iterator[Tuple[str, Section]]:
        for key in SECTION_TYPES:
            yield key, getattr(self, key)

    def section(self, key: str) -> Section:
        return getattr(self, key)

    @property
    def is_complete(self) -> bool:
        return self.pts >= MAX_POINTS

    def earned_points(self) -> int:
        return min(MAX_POINTS, sum(section.WEIGHT for _, section in self.sections() if section.done))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"date": self.date}
        for key, section in self.sections():
            data[key] = section.to_dict()
        data["pts"] = self.pts
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def initial(cls, day: str) -> "MissionDay":
        return cls(date=day)

    @classmethod
    def from_dict(cls, data: Optional[dict], day: str) -> "MissionDay":
        """Tolerant hydration: unknown shapes fall back to defaults field by field.

        `pts` is rebuilt from the done sections; a stored total that disagrees
        with them is ignored.
        """
        if not data:
            return cls.initial(day)
        completed_at = data.get("completedAt")
        mission = cls(
            date=data["date"] if isinstance(data.get("date"), str) else day,
            s1=SectionS1.from_dict(data.get("s1")),
            s2=SectionS2.from_dict(data.get("s2")),
            s3=SectionS3.from_dict(data.get("s3")),
            s4=SectionS4.from_dict(data.get("s4")),
            completed_at=int(completed_at) if _is_number(completed_at) else None,
        )
        mission.pts = mission.earned_points()
        return mission


@dataclass
class ProofRecord:
    """Optional audit attachment for a task completion; never drives state."""

    address: str
    day: str
    task_id: str
    tx_hash: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @property
    def has_payload(self) -> bool:
        return bool(self.tx_hash or self.meta)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.meta:
            data["meta"] = self.meta
        return data


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value == value and value not in (float("inf"), float("-inf"))


def _counter(value: object) -> int:
    return max(0, int(value)) if _is_number(value) else 0
