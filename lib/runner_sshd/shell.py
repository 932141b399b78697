from __future__ import annotations

import logging
import os
import platform
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CommandError

logger = logging.getLogger(__name__)


def is_windows() -> bool:
    return os.name == "nt" or platform.system() == "Windows"


def needs_sudo() -> bool:
    if is_windows() or not hasattr(os, "geteuid"):
        return False
    return os.geteuid() != 0


def format_command(argv: list[str]) -> str:
    return " ".join(shlex.quote(arg) for arg in argv)


@dataclass
class Shell:
    """Runs external commands, one at a time, blocking until each finishes."""

    dry_run: bool = False
    sudo: bool = field(default_factory=needs_sudo)

    def _argv(self, argv: list[str], privileged: bool) -> list[str]:
        if privileged and self.sudo:
            return ["sudo", "-n", *argv]
        return list(argv)

    def run(
            self,
            argv: list[str],
            *,
            privileged: bool = False,
            check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = self._argv(argv, privileged)
        if self.dry_run:
            logger.info(f"[dry-run] {format_command(cmd)}")
            return subprocess.CompletedProcess(cmd, 0, "", "")
        logger.debug(f"$ {format_command(cmd)}")
        try:
            res = subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            res = subprocess.CompletedProcess(cmd, 127, "", str(exc))
        if check and res.returncode != 0:
            raise CommandError(cmd, res.returncode, res.stderr or res.stdout)
        return res

    def succeeds(self, argv: list[str], *, privileged: bool = False) -> bool:
        return self.run(argv, privileged=privileged, check=False).returncode == 0

    def spawn(self, argv: list[str], *, log_path: str, privileged: bool = False) -> None:
        """Start a detached background process with its output appended to log_path."""
        cmd = self._argv(argv, privileged)
        if self.dry_run:
            logger.info(f"[dry-run] {format_command(cmd)} >> {log_path} 2>&1 &")
            return
        logger.debug(f"$ {format_command(cmd)} &")
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, "ab") as log:
                subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as exc:
            raise CommandError(cmd, 127, str(exc)) from exc
