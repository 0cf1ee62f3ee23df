# src/task_companion/tasks/formatting.py

from __future__ import annotations

from datetime import date, datetime, time

from ..forms.surface import EmbedField
from .task_models import Task

_WEEKDAYS = ("月", "火", "水", "木", "金", "土", "日")


def format_date(d: date) -> str:
    return f"{d:%Y/%m/%d} ({_WEEKDAYS[d.weekday()]})"


def format_time(t: time) -> str:
    return f"{t:%H:%M}"


def format_datetime(dt: datetime) -> str:
    return f"{format_date(dt.date())} {format_time(dt.time())}"


def format_relative(dt: datetime, now: datetime) -> str:
    """Coarse "in N days" / "N hours ago" text (Japanese)."""
    delta = dt - now
    seconds = int(delta.total_seconds())
    future = seconds >= 0
    seconds = abs(seconds)

    if seconds < 60:
        return "まもなく" if future else "たった今"
    if seconds < 3600:
        n, unit = seconds // 60, "分"
    elif seconds < 86400:
        n, unit = seconds // 3600, "時間"
    else:
        n, unit = seconds // 86400, "日"
    return f"{n}{unit}後" if future else f"{n}{unit}前"


def task_title(task: Task) -> str:
    return f"【{task.category.label}】{task.subject.display()} {task.details}".rstrip()


def task_field(task: Task, now: datetime) -> EmbedField:
    return EmbedField(
        name=task_title(task),
        value=f"{format_datetime(task.at)} ({format_relative(task.at, now)})",
    )
