from __future__ import annotations

import getpass
import re
from dataclasses import dataclass

from .errors import InvalidOptions

DEFAULT_PORT = 2222
DEFAULT_PROFILE_URL = "https://github.com"
DEFAULT_SETTLE_SECONDS = 2.0
CURRENT_USER = ":current"

_USER_RE = re.compile(r"^[^\s#\"',]+$")


@dataclass(frozen=True)
class ServerOptions:
    port: int = DEFAULT_PORT
    user: str = ""
    server_key: str | None = None
    authorized_keys: str = ""
    use_remote_keys: bool = False
    remote_username: str | None = None
    profile_url: str = DEFAULT_PROFILE_URL
    settle_seconds: float = DEFAULT_SETTLE_SECONDS


def resolve_user(raw: str | None) -> str:
    value = (raw or "").strip()
    if not value or value == CURRENT_USER:
        return getpass.getuser()
    return value


def parse_port(raw: int | str | None) -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DEFAULT_PORT
    try:
        port = int(raw)
    except (TypeError, ValueError):
        raise InvalidOptions(f"Port must be an integer, got {raw!r}") from None
    if not 1 <= port <= 65535:
        raise InvalidOptions(f"Port must be between 1 and 65535, got {port}")
    return port


def build_options(
    *,
    port: int | str | None = None,
    ssh_user: str | None = None,
    server_key: str | None = None,
    authorized_keys: str | None = None,
    use_remote_keys: bool = False,
    remote_username: str | None = None,
    profile_url: str | None = None,
    settle_seconds: float | None = None,
) -> ServerOptions:
    user = resolve_user(ssh_user)
    if not _USER_RE.match(user):
        raise InvalidOptions(f"Invalid SSH user name: {user!r}")
    key = (server_key or "").strip()
    settle = DEFAULT_SETTLE_SECONDS if settle_seconds is None else float(settle_seconds)
    if settle < 0:
        raise InvalidOptions("Settle time cannot be negative.")
    return ServerOptions(
        port=parse_port(port),
        user=user,
        # the daemon refuses key files without a trailing newline
        server_key=f"{key}\n" if key else None,
        authorized_keys=authorized_keys or "",
        use_remote_keys=bool(use_remote_keys),
        remote_username=(remote_username or "").strip() or None,
        profile_url=(profile_url or DEFAULT_PROFILE_URL).strip().rstrip("/"),
        settle_seconds=settle,
    )
