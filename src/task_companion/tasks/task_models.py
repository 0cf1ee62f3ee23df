# src/task_companion/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime, time
from enum import Enum, StrEnum
from typing import Any
from zoneinfo import ZoneInfo

from ..core.errors import IncompleteEntity


class Category(StrEnum):
    """Task category. Declaration order is the order shown to users."""

    EVENT = "event"
    EXAM = "exam"
    HOMEWORK = "homework"
    BELONGINGS = "belongings"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]

    @classmethod
    def from_db(cls, raw: str | None) -> Category:
        if not raw:
            return cls.OTHER
        try:
            return cls(raw)
        except ValueError:
            pass
        for cat, label in _CATEGORY_LABELS.items():
            if label == raw:
                return cat
        return cls.OTHER


_CATEGORY_LABELS: dict[Category, str] = {
    Category.EVENT: "イベント",
    Category.EXAM: "テスト",
    Category.HOMEWORK: "宿題",
    Category.BELONGINGS: "持ち物",
    Category.OTHER: "その他",
}

UNSPECIFIED_SUBJECT_LABEL = "(教科を指定しない)"


@dataclass(frozen=True, slots=True)
class Subject:
    """A known subject label, or unspecified (label is None)."""

    label: str | None = None

    @classmethod
    def unspecified(cls) -> Subject:
        return cls(None)

    @property
    def is_set(self) -> bool:
        return self.label is not None

    def display(self) -> str:
        return self.label if self.label is not None else ""

    def to_json(self) -> Any:
        return {"set": self.label} if self.label is not None else "unset"

    @classmethod
    def from_json(cls, raw: Any) -> Subject:
        if isinstance(raw, dict) and isinstance(raw.get("set"), str):
            return cls(raw["set"])
        if isinstance(raw, str) and raw != "unset":
            # Older data files stored the bare label.
            return cls(raw or None)
        return cls.unspecified()


class _Deferred(Enum):
    DEFER = "defer"

    def __repr__(self) -> str:
        return "DEFER"


# "Other..." was chosen: resolve this field through a sub-flow.
DEFER = _Deferred.DEFER


@dataclass(frozen=True, slots=True)
class Task:
    """
    A dated task.

    There is no id: two tasks with equal fields are the same task as far as
    removal and editing are concerned.
    """

    category: Category
    subject: Subject
    details: str
    at: datetime

    def as_partial(self) -> PartialTask:
        return PartialTask(
            category=self.category,
            subject=self.subject,
            date=self.at.date(),
            time=self.at.time(),
            details=self.details,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "subject": self.subject.to_json(),
            "details": self.details,
            "datetime": self.at.isoformat(),
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any], tz: ZoneInfo) -> Task:
        at = datetime.fromisoformat(str(raw["datetime"]))
        if at.tzinfo is None:
            at = at.replace(tzinfo=tz)
        return cls(
            category=Category.from_db(raw.get("category")),
            subject=Subject.from_json(raw.get("subject")),
            details=str(raw.get("details") or ""),
            at=at.astimezone(tz),
        )


@dataclass(slots=True)
class PartialTask:
    """Working state of the task form: every field optional."""

    category: Category | None = None
    subject: Subject | None = None
    date: date | _Deferred | None = None
    time: time | _Deferred | None = None
    details: str | None = None

    def missing(self) -> list[str]:
        out: list[str] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value is DEFER:
                out.append(f.name)
        return out

    def finalize(self, tz: ZoneInfo) -> Task:
        """Build the Task; raises IncompleteEntity naming the first unset field."""
        missing = self.missing()
        if missing:
            raise IncompleteEntity(missing[0])
        assert isinstance(self.date, date) and isinstance(self.time, time)
        return Task(
            category=self.category,  # type: ignore[arg-type]
            subject=self.subject,  # type: ignore[arg-type]
            details=self.details,  # type: ignore[arg-type]
            at=datetime.combine(self.date, self.time, tzinfo=tz),
        )
