# src/task_companion/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- ensures local (gitignored) directories exist,
- opens the JSON domain store,
- wires the command registry and AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..tasks.task_store import JsonDomainStore
from .commands import load_builtin_commands

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.data_file_path.parent.mkdir(parents=True, exist_ok=True)
    settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    load_builtin_commands()

    store = JsonDomainStore(settings.data_file_path, tz=settings.tz)
    logger.info(
        "Loaded %d task(s), %d subject(s) from %s",
        len(store.list_tasks()),
        len(store.list_subjects()),
        store.path,
    )
    return AppState(settings=settings, store=store)
