from __future__ import annotations

import dataclasses
import logging
import subprocess
from pathlib import Path

import pytest

from runner_sshd.errors import CommandError
from runner_sshd.platforms import PlatformProfile, linux_profile, windows_profile
from runner_sshd.shell import Shell


class FakeShell(Shell):
    """Records commands instead of running them; ssh-keygen drops fake key files."""

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        super().__init__(dry_run=False, sudo=False)
        self.calls: list[list[str]] = []
        self.spawned: list[list[str]] = []
        self.failing = set(failing)

    def run(self, argv, *, privileged=False, check=True):
        self.calls.append(list(argv))
        if argv[0] in self.failing:
            if check:
                raise CommandError(list(argv), 1, "boom")
            return subprocess.CompletedProcess(argv, 1, "", "boom")
        if argv[0] == "ssh-keygen":
            key = Path(argv[argv.index("-f") + 1])
            key.write_text("PRIVATE\n", encoding="utf-8")
            Path(f"{key}.pub").write_text("ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIHost host\n", encoding="utf-8")
        return subprocess.CompletedProcess(argv, 0, "", "")

    def spawn(self, argv, *, log_path, privileged=False):
        self.spawned.append(list(argv))

    def ran(self, program: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == program]


@pytest.fixture
def fake_shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def linux_tmp_profile(tmp_path) -> PlatformProfile:
    profile = linux_profile(home=str(tmp_path / "home"), os_release='id=ubuntu\nid_like=debian\n')
    return dataclasses.replace(
        profile,
        daemon_path=str(tmp_path / "sbin" / "sshd"),
        system_config_path=str(tmp_path / "etc" / "sshd_config"),
        backup_config_path=str(tmp_path / "etc" / "sshd_config.backup"),
    )


@pytest.fixture
def windows_tmp_profile(tmp_path) -> PlatformProfile:
    ssh_dir = tmp_path / "ProgramData" / "ssh"
    return dataclasses.replace(
        windows_profile(),
        config_path=str(ssh_dir / "sshd_config"),
        host_key_dir=str(ssh_dir),
        authorized_keys_path=str(ssh_dir / "authorized_keys"),
        admin_authorized_keys_path=str(ssh_dir / "administrators_authorized_keys"),
        daemon_path=str(tmp_path / "OpenSSH" / "sshd.exe"),
        log_path=str(ssh_dir / "logs" / "sshd.log"),
    )


@pytest.fixture(autouse=True)
def _reset_library_logger():
    lib_logger = logging.getLogger("runner_sshd")
    yield
    lib_logger.propagate = True
    lib_logger.setLevel(logging.NOTSET)
    for handler in list(lib_logger.handlers):
        lib_logger.removeHandler(handler)


@pytest.fixture
def shell_factory():
    return FakeShell
