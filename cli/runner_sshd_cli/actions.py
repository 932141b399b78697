from __future__ import annotations

import os
import uuid

ENV_OUTPUT = "GITHUB_OUTPUT"
ENV_STATE = "GITHUB_STATE"


class ActionsFileError(RuntimeError):
    pass


def _format_file_command(key: str, value: str) -> str:
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in key or delimiter in value:
        raise ActionsFileError(f"Unexpected delimiter collision while writing {key!r}")
    return f"{key}<<{delimiter}\n{value}\n{delimiter}\n"


def _append_file_command(env_name: str, key: str, value: str) -> None:
    path = os.getenv(env_name, "").strip()
    if not path:
        raise ActionsFileError(f"{env_name} is not set")
    with open(path, "a", encoding="utf-8", newline="\n") as f:
        f.write(_format_file_command(key, value))


def set_output(name: str, value: str) -> None:
    _append_file_command(ENV_OUTPUT, name, value)


def save_state(name: str, value: str) -> None:
    _append_file_command(ENV_STATE, name, value)


def get_state(name: str) -> str:
    return os.getenv(f"STATE_{name}", "")


class ActionsOutputs:
    def set_output(self, name: str, value: str) -> None:
        set_output(name, value)


class CollectedOutputs:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def set_output(self, name: str, value: str) -> None:
        self.values[name] = value


def output_sink() -> ActionsOutputs | CollectedOutputs:
    if os.getenv(ENV_OUTPUT, "").strip():
        return ActionsOutputs()
    return CollectedOutputs()
