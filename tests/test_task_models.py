# tests/test_task_models.py

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from task_companion.core.errors import IncompleteEntity
from task_companion.tasks.formatting import format_date, format_relative, task_title
from task_companion.tasks.task_models import DEFER, Category, PartialTask, Subject, Task

from .conftest import NOW, TOKYO


def test_finalize_names_first_missing_field() -> None:
    partial = PartialTask(category=Category.EXAM, subject=Subject("数学"))
    with pytest.raises(IncompleteEntity) as exc:
        partial.finalize(TOKYO)
    assert exc.value.field == "date"


def test_deferred_field_counts_as_missing() -> None:
    partial = PartialTask(
        category=Category.EXAM,
        subject=Subject("数学"),
        date=date(2025, 3, 21),
        time=DEFER,
        details="",
    )
    assert partial.missing() == ["time"]
    with pytest.raises(IncompleteEntity):
        partial.finalize(TOKYO)


def test_finalize_builds_task_in_timezone() -> None:
    partial = PartialTask(
        category=Category.HOMEWORK,
        subject=Subject.unspecified(),
        date=date(2025, 3, 21),
        time=time(8, 30),
        details="ワーク p.10",
    )
    task = partial.finalize(TOKYO)
    assert task.at == datetime(2025, 3, 21, 8, 30, tzinfo=TOKYO)
    assert task.as_partial() == partial


def test_subject_json_distinguishes_unset_from_label() -> None:
    assert Subject.unspecified().to_json() == "unset"
    assert Subject("unset").to_json() == {"set": "unset"}
    assert Subject.from_json({"set": "unset"}) == Subject("unset")
    assert Subject.from_json("unset") == Subject.unspecified()
    # legacy bare label
    assert Subject.from_json("英語") == Subject("英語")


def test_task_from_json_accepts_naive_datetime() -> None:
    raw = {"category": "テスト", "subject": "unset", "details": "", "datetime": "2025-03-21T10:00:00"}
    task = Task.from_json(raw, TOKYO)
    assert task.category is Category.EXAM
    assert task.at == datetime(2025, 3, 21, 10, 0, tzinfo=TOKYO)


def test_task_title_and_formatting() -> None:
    task = Task(Category.BELONGINGS, Subject("理科"), "白衣", datetime(2025, 3, 21, 8, 0, tzinfo=TOKYO))
    assert task_title(task) == "【持ち物】理科 白衣"
    assert format_date(date(2025, 3, 20)) == "2025/03/20 (木)"
    assert format_relative(task.at, NOW) == "23時間後"
    assert format_relative(NOW, task.at) == "23時間前"
