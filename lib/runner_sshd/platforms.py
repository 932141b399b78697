from __future__ import annotations

import logging
import ntpath
import os
import platform
import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .options import ServerOptions

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = "/etc/os-release"
HOST_KEY_NAME = "ssh_host_ed25519_key"
HOST_KEY_TYPES = ("rsa", "ecdsa", "ed25519")

WINDOWS_SSH_DIR = r"C:\ProgramData\ssh"
WINDOWS_DAEMON_PATH = r"C:\Windows\System32\OpenSSH\sshd.exe"
WINDOWS_ADMIN_KEYS_DIRECTIVE = "__PROGRAMDATA__/ssh/administrators_authorized_keys"
UNIX_DAEMON_PATH = "/usr/sbin/sshd"
LINUX_SYSTEM_CONFIG = "/etc/ssh/sshd_config"
LINUX_PRIVSEP_DIR = "/run/sshd"

_PACKAGE_MANAGERS = (
    ("apt", re.compile(r"\b(ubuntu|debian)\b")),
    ("yum", re.compile(r"\b(centos|rhel|fedora)\b")),
    ("apk", re.compile(r"\balpine\b")),
)

_SFTP_SERVER_PATHS = {
    "apt": "/usr/lib/openssh/sftp-server",
    "yum": "/usr/libexec/openssh/sftp-server",
    "apk": "/usr/lib/ssh/sftp-server",
}


class Family(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"


class Capability(str, Enum):
    INSTALL = "install"
    KEYGEN = "keygen"
    BACKUP_CONFIG = "backup-config"
    HARDEN_KEYS = "harden-keys"
    PREPARE_RUNTIME = "prepare-runtime"
    START = "start"
    STOP = "stop"
    RESTORE_CONFIG = "restore-config"


@dataclass(frozen=True)
class Recipe:
    argv: tuple[str, ...]
    privileged: bool = False
    detached: bool = False

    def render(self, values: Mapping[str, object]) -> list[str]:
        return [part.format(**values) for part in self.argv]


def _powershell(script: str) -> Recipe:
    return Recipe(("powershell", "-NoProfile", "-NonInteractive", "-Command", script))


@dataclass(frozen=True)
class PlatformProfile:
    family: Family
    config_path: str
    host_key_dir: str
    authorized_keys_path: str
    sftp_subsystem_path: str
    uses_service_manager: bool
    daemon_path: str
    log_path: str
    use_pam: bool
    package_manager: str | None = None
    admin_authorized_keys_path: str | None = None
    system_config_path: str | None = None
    backup_config_path: str | None = None
    backup_marker_path: str | None = None
    privsep_dir: str | None = None
    recipes: Mapping[Capability, tuple[Recipe, ...]] = field(default_factory=dict)

    @property
    def pathmod(self):
        return ntpath if self.family is Family.WINDOWS else posixpath

    @property
    def host_key_path(self) -> str:
        return self.pathmod.join(self.host_key_dir, HOST_KEY_NAME)

    def host_public_key_paths(self) -> list[tuple[str, str]]:
        return [
            (key_type, self.pathmod.join(self.host_key_dir, f"ssh_host_{key_type}_key.pub"))
            for key_type in HOST_KEY_TYPES
        ]

    def has(self, capability: Capability) -> bool:
        return bool(self.recipes.get(capability))

    def commands(self, capability: Capability, options: ServerOptions) -> list[tuple[list[str], Recipe]]:
        values = {
            "port": options.port,
            "config": self.config_path,
            "daemon": self.daemon_path,
            "key": self.host_key_path,
            "log": self.log_path,
            "system_config": self.system_config_path or "",
            "backup": self.backup_config_path or "",
            "privsep_dir": self.privsep_dir or "",
            "admin_keys": self.admin_authorized_keys_path or "",
        }
        return [(recipe.render(values), recipe) for recipe in self.recipes.get(capability, ())]


def detect_family(system: str | None = None) -> Family | None:
    name = (system if system is not None else platform.system()).strip().lower()
    if name.startswith("win") or name.startswith("cygwin") or name.startswith("msys"):
        return Family.WINDOWS
    if name == "darwin":
        return Family.MACOS
    if name == "linux":
        return Family.LINUX
    return None


def read_os_release(path: str = OS_RELEASE_PATH) -> str:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read().lower()
    except OSError:
        return "unknown"


def detect_package_manager(os_release: str) -> str | None:
    text = (os_release or "").lower()
    for manager, pattern in _PACKAGE_MANAGERS:
        if pattern.search(text):
            return manager
    return None


def _unix_keygen() -> tuple[Recipe, ...]:
    return (Recipe(("ssh-keygen", "-q", "-t", "ed25519", "-N", "", "-f", "{key}")),)


def _unix_start() -> tuple[Recipe, ...]:
    return (Recipe(("{daemon}", "-D", "-e", "-f", "{config}", "-p", "{port}"), privileged=True, detached=True),)


def _unix_stop() -> tuple[Recipe, ...]:
    # bracketed first letter keeps the pattern off the sudo/pkill command line itself;
    # the port may be followed by the "[listener] ..." title newer sshd sets
    return (Recipe(("pkill", "-f", "[s]shd .*-p {port}( |$)"), privileged=True),)


def _linux_install(package_manager: str | None) -> tuple[Recipe, ...]:
    if package_manager == "apt":
        return (
            Recipe(("apt-get", "update"), privileged=True),
            Recipe(("apt-get", "install", "-y", "openssh-server"), privileged=True),
        )
    if package_manager == "yum":
        return (Recipe(("yum", "install", "-y", "openssh-server"), privileged=True),)
    if package_manager == "apk":
        return (Recipe(("apk", "add", "openssh-server"), privileged=True),)
    return ()


def windows_profile() -> PlatformProfile:
    return PlatformProfile(
        family=Family.WINDOWS,
        config_path=ntpath.join(WINDOWS_SSH_DIR, "sshd_config"),
        host_key_dir=WINDOWS_SSH_DIR,
        authorized_keys_path=ntpath.join(WINDOWS_SSH_DIR, "authorized_keys"),
        admin_authorized_keys_path=ntpath.join(WINDOWS_SSH_DIR, "administrators_authorized_keys"),
        sftp_subsystem_path="sftp-server.exe",
        uses_service_manager=True,
        daemon_path=WINDOWS_DAEMON_PATH,
        log_path=ntpath.join(WINDOWS_SSH_DIR, "logs", "sshd.log"),
        use_pam=False,
        recipes={
            Capability.INSTALL: (
                _powershell("Add-WindowsCapability -Online -Name OpenSSH.Server~~~~0.0.1.0"),
                _powershell("Add-WindowsCapability -Online -Name OpenSSH.Client~~~~0.0.1.0"),
            ),
            Capability.HARDEN_KEYS: (
                Recipe(("icacls", "{admin_keys}", "/inheritance:r", "/grant", "*S-1-5-32-544:F", "/grant", "*S-1-5-18:F")),
            ),
            Capability.START: (
                _powershell("Start-Service sshd"),
                _powershell("Set-Service -Name sshd -StartupType Automatic"),
            ),
            Capability.STOP: (
                _powershell("Stop-Service sshd -Force"),
                _powershell("Set-Service -Name sshd -StartupType Disabled"),
            ),
        },
    )


def linux_profile(*, home: str | None = None, os_release: str | None = None) -> PlatformProfile:
    ssh_dir = posixpath.join(home or os.path.expanduser("~"), ".ssh")
    manager = detect_package_manager(read_os_release() if os_release is None else os_release)
    return PlatformProfile(
        family=Family.LINUX,
        config_path=posixpath.join(ssh_dir, "sshd_config_custom"),
        host_key_dir=ssh_dir,
        authorized_keys_path=posixpath.join(ssh_dir, "authorized_keys"),
        sftp_subsystem_path=_SFTP_SERVER_PATHS.get(manager or "", "internal-sftp"),
        uses_service_manager=False,
        daemon_path=UNIX_DAEMON_PATH,
        log_path=posixpath.join(ssh_dir, "sshd.log"),
        use_pam=True,
        package_manager=manager,
        system_config_path=LINUX_SYSTEM_CONFIG,
        backup_config_path=f"{LINUX_SYSTEM_CONFIG}.backup",
        backup_marker_path=posixpath.join(ssh_dir, "sshd_config.backup-taken"),
        privsep_dir=LINUX_PRIVSEP_DIR,
        recipes={
            Capability.INSTALL: _linux_install(manager),
            Capability.KEYGEN: _unix_keygen(),
            Capability.BACKUP_CONFIG: (Recipe(("cp", "-p", "{system_config}", "{backup}"), privileged=True),),
            Capability.PREPARE_RUNTIME: (Recipe(("mkdir", "-p", "{privsep_dir}"), privileged=True),),
            Capability.START: _unix_start(),
            Capability.STOP: _unix_stop(),
            Capability.RESTORE_CONFIG: (Recipe(("mv", "{backup}", "{system_config}"), privileged=True),),
        },
    )


def macos_profile(*, home: str | None = None) -> PlatformProfile:
    ssh_dir = posixpath.join(home or os.path.expanduser("~"), ".ssh")
    return PlatformProfile(
        family=Family.MACOS,
        config_path=posixpath.join(ssh_dir, "sshd_config"),
        host_key_dir=ssh_dir,
        authorized_keys_path=posixpath.join(ssh_dir, "authorized_keys"),
        sftp_subsystem_path="/usr/libexec/sftp-server",
        uses_service_manager=False,
        daemon_path=UNIX_DAEMON_PATH,
        log_path=posixpath.join(ssh_dir, "sshd.log"),
        use_pam=True,
        recipes={
            Capability.KEYGEN: _unix_keygen(),
            Capability.START: _unix_start(),
            Capability.STOP: _unix_stop(),
        },
    )


def profile_for(family: Family, *, home: str | None = None, os_release: str | None = None) -> PlatformProfile:
    if family is Family.WINDOWS:
        return windows_profile()
    if family is Family.MACOS:
        return macos_profile(home=home)
    return linux_profile(home=home, os_release=os_release)


def select_profile(
        *,
        system: str | None = None,
        home: str | None = None,
        os_release: str | None = None,
) -> PlatformProfile:
    family = detect_family(system)
    if family is None:
        logger.warning(
            f"Unsupported platform {system or platform.system()!r}; falling back to Linux paths."
        )
        family = Family.LINUX
    profile = profile_for(family, home=home, os_release=os_release)
    if family is Family.LINUX and profile.package_manager is None:
        logger.warning("Unrecognized Linux distribution; the SSH server package will not be installed.")
    return profile
