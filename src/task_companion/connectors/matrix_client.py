# src/task_companion/connectors/matrix_client.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse

from ..tasks.task_store import atomic_write_json

logger = logging.getLogger(__name__)


def _session_path(store_dir: Path) -> Path:
    return store_dir / "session.json"


def _load_session(path: Path) -> dict[str, str] | None:
    try:
        data: Any = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Cannot read Matrix session %s: %r", path, e)
        return None
    if not isinstance(data, dict):
        return None
    fields = ("access_token", "user_id", "device_id")
    if not all(data.get(k) for k in fields):
        logger.warning("Matrix session %s is missing required fields", path)
        return None
    return {k: str(data[k]) for k in fields}


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Build an AsyncClient, reusing the saved access token when there is one.

    The session file holds a live access token; it lives under the
    gitignored data dir and is written with 0600 permissions.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/tasks/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKS_MATRIX_HOMESERVER and TASKS_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(store_sync_tokens=False),
    )

    if session_file.exists():
        session = _load_session(session_file)
        if session is not None:
            client.access_token = session["access_token"]
            client.user_id = session["user_id"]
            client.device_id = session["device_id"]
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        logger.warning("Falling back to password login")

    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set TASKS_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'tasks')} (Python)"
    logger.info("Logging in to Matrix (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    atomic_write_json(
        session_file,
        {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
    )
    logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    return client
