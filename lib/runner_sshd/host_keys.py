from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_private_key,
    load_ssh_private_key,
)

from .errors import CommandError, HostKeyError
from .files import ensure_private_dir, write_file, write_private_file
from .platforms import Capability, PlatformProfile
from .options import ServerOptions
from .shell import Shell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerIdentity:
    private_key_path: str
    public_key_path: str
    source: str  # "supplied", "existing", "generated" or "service"


def derive_public_key(private_key: str) -> str:
    data = private_key.encode("utf-8")
    try:
        key = load_ssh_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        key = load_pem_private_key(data, password=None)
    return key.public_key().public_bytes(Encoding.OpenSSH, PublicFormat.OpenSSH).decode("ascii")


def _install_supplied_key(profile: PlatformProfile, key_material: str) -> None:
    try:
        write_private_file(profile.host_key_path, key_material)
    except OSError as exc:
        raise HostKeyError(f"Could not write host key {profile.host_key_path}: {exc}") from exc
    try:
        public_key = derive_public_key(key_material)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        logger.warning(f"Could not derive a public key from the supplied server key: {exc}")
        return
    try:
        write_file(f"{profile.host_key_path}.pub", f"{public_key}\n", mode=0o644)
    except OSError as exc:
        logger.warning(f"Could not write host public key: {exc}")


def _generate_key(profile: PlatformProfile, options: ServerOptions, shell: Shell) -> None:
    try:
        ensure_private_dir(profile.host_key_dir)
        for argv, recipe in profile.commands(Capability.KEYGEN, options):
            shell.run(argv, privileged=recipe.privileged)
        os.chmod(profile.host_key_path, 0o600)
        os.chmod(f"{profile.host_key_path}.pub", 0o644)
    except (CommandError, OSError) as exc:
        raise HostKeyError(f"Could not generate host key {profile.host_key_path}: {exc}") from exc


def ensure_host_keys(profile: PlatformProfile, options: ServerOptions, shell: Shell) -> ServerIdentity:
    """Make sure the daemon has an ed25519 identity before its first start.

    Caller-supplied key material always replaces the key on disk. Without it an
    existing key is reused as-is. Profiles without a keygen recipe (Windows)
    leave key creation to the service's own first-start bootstrap.
    """
    key_path = profile.host_key_path
    pub_path = f"{key_path}.pub"

    if options.server_key:
        if shell.dry_run:
            logger.info(f"[dry-run] write supplied host key to {key_path}")
        else:
            _install_supplied_key(profile, options.server_key)
        logger.info("Installed supplied server host key.")
        return ServerIdentity(key_path, pub_path, "supplied")

    if os.path.exists(key_path):
        logger.info(f"Reusing existing host key {key_path}.")
        return ServerIdentity(key_path, pub_path, "existing")

    if not profile.has(Capability.KEYGEN):
        logger.info("Host keys will be created by the SSH service on first start.")
        return ServerIdentity(key_path, pub_path, "service")

    if shell.dry_run:
        for argv, _ in profile.commands(Capability.KEYGEN, options):
            shell.run(argv)
    else:
        _generate_key(profile, options, shell)
    logger.info("Generated ed25519 server host key.")
    return ServerIdentity(key_path, pub_path, "generated")
