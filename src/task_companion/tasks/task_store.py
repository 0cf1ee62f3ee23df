# src/task_companion/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
import time
from collections.abc import Iterable
from datetime import time as dtime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from .task_models import Task

logger = logging.getLogger(__name__)

CONFIG_KEYS = ("ping_channel", "ping_role", "log_channel", "panel_message")


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(Exception):
        # Best-effort: not critical on Windows or restricted FS.
        os.chmod(path, 0o600)


class JsonDomainStore:
    """
    In-process domain store persisted to a single JSON file.

    Collections:
    - tasks: insertion-ordered list; identity is value equality
    - subjects: set of labels, iterated in sorted order
    - suggest_times: time-of-day -> label, iterated by time
    - config: ping_channel / ping_role / log_channel / panel_message

    Thread-safety:
    - every public method runs under one re-entrant lock and never awaits,
      so reads and writes are linearizable
    - commit() writes a snapshot taken under the lock
    """

    def __init__(self, path: str | Path = "data.json", *, tz: ZoneInfo) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._tz = tz
        self._lock = threading.RLock()

        self._tasks: list[Task] = []
        self._subjects: set[str] = set()
        self._suggest_times: dict[dtime, str] = {}
        self._config: dict[str, Any] = {}

        self._load()
        logger.info(
            "DomainStore ready file=%s tasks=%d subjects=%d suggest_times=%d",
            self._path,
            len(self._tasks),
            len(self._subjects),
            len(self._suggest_times),
        )

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("Data file %s not found, using default data", self._path)
            self.commit()
            return

        try:
            raw = json.loads(self._path.read_text("utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("Expected JSON object")
        except Exception:
            backup = self._path.with_name(f"{self._path.name}.corrupt-{int(time.time())}")
            logger.exception("Failed to read %s; moving it to %s and starting empty", self._path, backup)
            with contextlib.suppress(Exception):
                os.replace(self._path, backup)
            self.commit()
            return

        tasks: list[Task] = []
        for item in raw.get("tasks") or []:
            try:
                tasks.append(Task.from_json(item, self._tz))
            except Exception:
                logger.warning("Skipping unreadable task entry: %r", item)

        subjects = {str(s).strip() for s in raw.get("subjects") or [] if str(s).strip()}

        suggest_times: dict[dtime, str] = {}
        for key, label in (raw.get("suggest_times") or {}).items():
            try:
                suggest_times[dtime.fromisoformat(key)] = str(label)
            except ValueError:
                logger.warning("Skipping unreadable suggested time: %r", key)

        config_raw = raw.get("config") or {}
        config = {k: config_raw.get(k) for k in CONFIG_KEYS if config_raw.get(k) is not None}

        with self._lock:
            self._tasks = tasks
            self._subjects = subjects
            self._suggest_times = suggest_times
            self._config = config

    def _to_json(self) -> dict[str, Any]:
        return {
            "tasks": [t.to_json() for t in self._tasks],
            "subjects": sorted(self._subjects),
            "suggest_times": {t.strftime("%H:%M"): label for t, label in sorted(self._suggest_times.items())},
            "config": dict(self._config),
        }

    def commit(self) -> None:
        with self._lock:
            data = self._to_json()
            atomic_write_json(self._path, data)
        logger.debug("DomainStore committed to %s", self._path)

    # ---- tasks ----

    def list_tasks(self) -> list[Task]:
        with self._lock:
            return list(self._tasks)

    def contains_task(self, task: Task) -> bool:
        with self._lock:
            return task in self._tasks

    def insert_task(self, task: Task) -> bool:
        """Append a task. Returns True when an equal task was already present."""
        with self._lock:
            duplicate = task in self._tasks
            self._tasks.append(task)
        if duplicate:
            logger.warning("Inserted a task equal to an existing one: %r", task)
        return duplicate

    def remove_task(self, task: Task) -> bool:
        """Remove the first task equal to `task`. False if none is left."""
        with self._lock:
            try:
                idx = self._tasks.index(task)
            except ValueError:
                return False
            del self._tasks[idx]
            remaining = self._tasks.count(task)
        if remaining:
            logger.warning("Removed one of %d equal tasks: %r", remaining + 1, task)
        return True

    def replace_task(self, old: Task, new: Task) -> bool:
        """Replace the first task equal to `old` in place. False if it is gone."""
        with self._lock:
            try:
                idx = self._tasks.index(old)
            except ValueError:
                return False
            self._tasks[idx] = new
        return True

    # ---- subjects ----

    def list_subjects(self) -> list[str]:
        with self._lock:
            return sorted(self._subjects)

    def add_subjects(self, subjects: Iterable[str]) -> list[str]:
        """Add labels; returns the ones that were not present yet."""
        added: list[str] = []
        with self._lock:
            for s in subjects:
                label = s.strip()
                if not label or label in self._subjects:
                    continue
                self._subjects.add(label)
                added.append(label)
        return added

    def remove_subject(self, subject: str) -> bool:
        with self._lock:
            if subject not in self._subjects:
                return False
            self._subjects.discard(subject)
            return True

    # ---- suggested times ----

    def list_suggest_times(self) -> list[tuple[dtime, str]]:
        with self._lock:
            return sorted(self._suggest_times.items())

    def put_suggest_time(self, at: dtime, label: str) -> None:
        with self._lock:
            self._suggest_times[at] = label

    def remove_suggest_time(self, at: dtime) -> str | None:
        with self._lock:
            return self._suggest_times.pop(at, None)

    # ---- config scalars ----

    def get_config(self, key: str) -> Any | None:
        if key not in CONFIG_KEYS:
            raise KeyError(key)
        with self._lock:
            return self._config.get(key)

    def set_config(self, key: str, value: Any | None) -> None:
        if key not in CONFIG_KEYS:
            raise KeyError(key)
        with self._lock:
            if value is None:
                self._config.pop(key, None)
            else:
                self._config[key] = value
