# src/task_companion/forms/catalog.py

from __future__ import annotations

"""
Option catalog for the task form.

build() turns (working PartialTask, domain snapshot) into the ordered choices
of every field. It is pure: the same inputs always give the same choices and
the same pre-selection flags, so re-rendering after a repeated selection shows
exactly the same state.
"""

import json
import uuid
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Any

from ..core.errors import InvalidSelection
from ..core.ports import DomainStore
from ..tasks.formatting import format_date, format_time
from ..tasks.task_models import DEFER, UNSPECIFIED_SUBJECT_LABEL, Category, PartialTask, Subject
from .surface import Button, ButtonStyle, Component, Select, SelectOption

# JSON-encoded tokens never start with "other:", so this cannot collide with a real value.
OTHER_TOKEN = f"other:{uuid.uuid4().hex}"

CATEGORY = "category"
SUBJECT = "subject"
DATE = "date"
TIME = "time"
SUBMIT = "submit"

FIELD_ORDER = (CATEGORY, SUBJECT, DATE, TIME)
REQUIRED_FOR_SUBMIT = (CATEGORY, SUBJECT)

OTHER_DATE_LABEL = "その他の日付"
OTHER_TIME_LABEL = "その他の時刻"
SUBMIT_LABEL = "送信"

_PLACEHOLDERS = {
    CATEGORY: "カテゴリー",
    SUBJECT: "教科",
    DATE: "日付",
    TIME: "時間",
}


@dataclass(frozen=True, slots=True)
class DomainSnapshot:
    """Domain data captured once when a form session starts."""

    subjects: tuple[str, ...]
    suggest_times: tuple[tuple[time, str], ...]
    today: date
    lookahead_days: int = 24

    @classmethod
    def capture(cls, store: DomainStore, *, today: date, lookahead_days: int = 24) -> DomainSnapshot:
        return cls(
            subjects=tuple(store.list_subjects()),
            suggest_times=tuple(store.list_suggest_times()),
            today=today,
            lookahead_days=lookahead_days,
        )


@dataclass(frozen=True, slots=True)
class Choice:
    label: str
    token: str
    is_default: bool
    value: Any


@dataclass(frozen=True, slots=True)
class FieldChoices:
    field: str
    choices: tuple[Choice, ...]
    placeholder: str

    def resolve(self, token: str) -> Any:
        """Checked lookup of a token among this field's choices."""
        for choice in self.choices:
            if choice.token == token:
                return choice.value
        raise InvalidSelection(self.field, token)


def encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _category_choices(partial: PartialTask) -> list[Choice]:
    return [
        Choice(c.label, encode(c.value), partial.category == c, c)
        for c in Category
    ]


def _subject_choices(partial: PartialTask, snapshot: DomainSnapshot) -> list[Choice]:
    out = []
    for label in snapshot.subjects:
        subject = Subject(label)
        out.append(Choice(label, encode(subject.to_json()), partial.subject == subject, subject))
    unset = Subject.unspecified()
    out.append(Choice(UNSPECIFIED_SUBJECT_LABEL, encode(unset.to_json()), partial.subject == unset, unset))
    return out


def _date_choices(partial: PartialTask, snapshot: DomainSnapshot) -> list[Choice]:
    out = []
    for i in range(snapshot.lookahead_days):
        d = snapshot.today + timedelta(days=i)
        out.append(Choice(format_date(d), encode(d.isoformat()), partial.date == d, d))
    out.append(Choice(OTHER_DATE_LABEL, OTHER_TOKEN, partial.date is DEFER, DEFER))
    return out


def _time_choices(partial: PartialTask, snapshot: DomainSnapshot) -> list[Choice]:
    out = []
    for t, label in snapshot.suggest_times:
        out.append(Choice(f"{label} ({format_time(t)})", encode(format_time(t)), partial.time == t, t))
    out.append(Choice(OTHER_TIME_LABEL, OTHER_TOKEN, partial.time is DEFER, DEFER))
    return out


def _placeholder(field: str, partial: PartialTask) -> str:
    if field == DATE and isinstance(partial.date, date):
        return format_date(partial.date)
    if field == TIME and isinstance(partial.time, time):
        return format_time(partial.time)
    return _PLACEHOLDERS[field]


def build(partial: PartialTask, snapshot: DomainSnapshot) -> tuple[FieldChoices, ...]:
    """Ordered choices for category, subject, date and time."""
    per_field = {
        CATEGORY: _category_choices(partial),
        SUBJECT: _subject_choices(partial, snapshot),
        DATE: _date_choices(partial, snapshot),
        TIME: _time_choices(partial, snapshot),
    }
    return tuple(
        FieldChoices(field=f, choices=tuple(per_field[f]), placeholder=_placeholder(f, partial))
        for f in FIELD_ORDER
    )


def can_submit(partial: PartialTask) -> bool:
    return all(getattr(partial, f) is not None for f in REQUIRED_FOR_SUBMIT)


def field_choices(catalog: tuple[FieldChoices, ...], field: str) -> FieldChoices:
    for fc in catalog:
        if fc.field == field:
            return fc
    raise InvalidSelection(field)


def to_components(catalog: tuple[FieldChoices, ...], *, submit_enabled: bool) -> tuple[Component, ...]:
    selects: list[Component] = [
        Select(
            custom_id=fc.field,
            options=tuple(SelectOption(c.label, c.token, default=c.is_default) for c in fc.choices),
            placeholder=fc.placeholder,
        )
        for fc in catalog
    ]
    selects.append(Button(SUBMIT, SUBMIT_LABEL, style=ButtonStyle.PRIMARY, disabled=not submit_enabled))
    return tuple(selects)
