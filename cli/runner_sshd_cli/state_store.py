from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import tomllib
import tomli_w
from platformdirs import user_state_dir

from runner_sshd.lifecycle import LifecycleState

from . import actions
from .config import APP_NAME

STATE_KEY = "lifecycle"
STATE_FILENAME = "state.toml"


class ActionsStateStore:
    """Lifecycle state carried between the main and post steps of a workflow job.

    ``STATE_lifecycle`` only reaches the post step of the same action, so every
    save also goes to the file store, which answers when the variable is unset.
    """

    def __init__(self, fallback: FileStateStore | None = None) -> None:
        self.fallback = fallback or FileStateStore()

    def load(self) -> LifecycleState:
        raw = actions.get_state(STATE_KEY)
        if raw.strip():
            return LifecycleState.parse(raw)
        return self.fallback.load()

    def save(self, state: LifecycleState) -> None:
        self.fallback.save(state)
        actions.save_state(STATE_KEY, state.value)


class FileStateStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or Path(user_state_dir(APP_NAME)) / STATE_FILENAME

    def load(self) -> LifecycleState:
        if not self.path.exists():
            return LifecycleState.NOT_STARTED
        with self.path.open("rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError:
                return LifecycleState.NOT_STARTED
        return LifecycleState.parse(str(data.get(STATE_KEY) or ""))

    def save(self, state: LifecycleState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            STATE_KEY: state.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self.path.write_bytes(tomli_w.dumps(payload).encode("utf-8"))
        os.chmod(self.path, 0o600)


def open_state_store() -> ActionsStateStore | FileStateStore:
    if os.getenv(actions.ENV_STATE, "").strip():
        return ActionsStateStore()
    return FileStateStore()
