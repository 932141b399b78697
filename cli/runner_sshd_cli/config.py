from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from typing import Any

from platformdirs import user_config_dir

from runner_sshd.options import DEFAULT_PROFILE_URL, ServerOptions, build_options

from . import console

APP_NAME = "runner-sshd"
CONFIG_FILENAME = "config.toml"
ENV_PROFILE_URL = "RUNNER_SSHD_PROFILE_URL"
ENV_SERVER_URL = "GITHUB_SERVER_URL"
ENV_ACTOR = "GITHUB_ACTOR"


@dataclass
class Defaults:
    port: int | None = None
    ssh_user: str | None = None
    profile_url: str | None = None
    settle_seconds: float | None = None


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def from_toml(data: dict[str, Any]) -> Defaults:
    defaults = Defaults()
    port = data.get("port")
    if isinstance(port, int) and not isinstance(port, bool):
        defaults.port = port
    ssh_user = data.get("ssh_user")
    if isinstance(ssh_user, str) and ssh_user.strip():
        defaults.ssh_user = ssh_user.strip()
    profile_url = data.get("profile_url")
    if isinstance(profile_url, str) and profile_url.strip():
        defaults.profile_url = profile_url.strip().rstrip("/")
    settle = data.get("settle_seconds")
    if isinstance(settle, (int, float)) and not isinstance(settle, bool):
        defaults.settle_seconds = float(settle)
    return defaults


def load_defaults() -> Defaults:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return Defaults()
    except tomllib.TOMLDecodeError as exc:
        console.warn(f"Ignoring invalid config file {path}: {exc}")
        return Defaults()
    return from_toml(data)


def resolve_profile_url(defaults: Defaults, override: str | None = None) -> str:
    for candidate in (
            override,
            os.getenv(ENV_PROFILE_URL),
            defaults.profile_url,
            os.getenv(ENV_SERVER_URL),
    ):
        value = (candidate or "").strip()
        if value:
            return value.rstrip("/")
    return DEFAULT_PROFILE_URL


def resolve_options(
        *,
        port: str | None,
        ssh_user: str | None,
        server_key: str | None,
        authorized_keys: str | None,
        use_actor_keys: bool,
        remote_username: str | None,
        profile_url: str | None = None,
        defaults: Defaults | None = None,
) -> ServerOptions:
    """Merge command-line/action inputs with the defaults file and CI environment."""
    defaults = defaults or load_defaults()
    return build_options(
        port=port if (port or "").strip() else defaults.port,
        ssh_user=ssh_user if (ssh_user or "").strip() else defaults.ssh_user,
        server_key=server_key,
        authorized_keys=authorized_keys,
        use_remote_keys=use_actor_keys,
        remote_username=remote_username or os.getenv(ENV_ACTOR),
        profile_url=resolve_profile_url(defaults, profile_url),
        settle_seconds=defaults.settle_seconds,
    )
