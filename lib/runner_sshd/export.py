from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .options import ServerOptions
from .platforms import PlatformProfile
from .probe import LOCALHOST

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    def set_output(self, name: str, value: str) -> None: ...


@dataclass(frozen=True)
class HostPublicKey:
    type: str
    content: str


@dataclass(frozen=True)
class ConnectionInfo:
    hostname: str
    port: int
    user: str
    host_public_keys: tuple[HostPublicKey, ...] = ()

    @property
    def host_keys_text(self) -> str:
        return "\n".join(key.content for key in self.host_public_keys)

    @property
    def ssh_command(self) -> str:
        return f"ssh -p {self.port} {self.user}@{self.hostname}"

    def as_outputs(self) -> dict[str, str]:
        return {
            "hostname": self.hostname,
            "port": str(self.port),
            "username": self.user,
            "host-keys": self.host_keys_text,
        }


_KEY_TYPE_PREFIXES = (
    ("ssh-ed25519", "ed25519"),
    ("ssh-rsa", "rsa"),
    ("ecdsa-sha2-", "ecdsa"),
)


def key_type_of(public_key: str, default: str) -> str:
    """Algorithm of an OpenSSH public key line, falling back to ``default``."""
    for prefix, key_type in _KEY_TYPE_PREFIXES:
        if public_key.startswith(prefix):
            return key_type
    return default


def collect_host_keys(profile: PlatformProfile) -> tuple[HostPublicKey, ...]:
    keys: list[HostPublicKey] = []
    for key_type, path in profile.host_public_key_paths():
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read().strip()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning(f"Could not read host key {path}: {exc}")
            continue
        if content:
            keys.append(HostPublicKey(type=key_type_of(content, key_type), content=content))
    if not keys:
        logger.warning(f"No host public keys found in {profile.host_key_dir}.")
    return tuple(keys)


def build_connection_info(profile: PlatformProfile, options: ServerOptions) -> ConnectionInfo:
    return ConnectionInfo(
        hostname=LOCALHOST,
        port=options.port,
        user=options.user,
        host_public_keys=collect_host_keys(profile),
    )


def publish(info: ConnectionInfo, sink: OutputSink) -> None:
    for name, value in info.as_outputs().items():
        sink.set_output(name, value)
