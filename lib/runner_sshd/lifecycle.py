from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from . import authorized_keys, sshd_config
from .errors import (
    CommandError,
    ConfigError,
    InstallError,
    SshdError,
    StartError,
    VerificationError,
)
from .export import ConnectionInfo, OutputSink, build_connection_info, publish
from .files import write_file, write_private_file
from .host_keys import ServerIdentity, ensure_host_keys
from .options import ServerOptions
from .platforms import Capability, PlatformProfile
from .probe import check_tcp, wait_for_port, wait_for_port_closed
from .shell import Shell

logger = logging.getLogger(__name__)

VERIFY_LOG_TAIL = 20


class LifecycleState(str, Enum):
    NOT_STARTED = "not-started"
    SETUP_COMPLETE = "setup-complete"
    TORN_DOWN = "torn-down"

    @classmethod
    def parse(cls, raw: str | None) -> "LifecycleState":
        value = (raw or "").strip().lower()
        if value == "true":
            # bare "setup attempted" flag
            return cls.SETUP_COMPLETE
        for state in cls:
            if state.value == value:
                return state
        return cls.NOT_STARTED


class Phase(str, Enum):
    NOT_STARTED = "not-started"
    INSTALLING = "installing"
    CONFIGURING = "configuring"
    AUTHORIZING = "authorizing"
    STARTING = "starting"
    VERIFYING = "verifying"
    RUNNING = "running"
    STOPPING_AND_RESTORING = "stopping-and-restoring"
    TORN_DOWN = "torn-down"
    FAILED = "failed"


class FailurePolicy(str, Enum):
    FATAL = "fatal"
    WARN = "warn"


class StepStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    WARNED = "warned"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    name: str
    phase: Phase
    policy: FailurePolicy
    action: Callable[["Orchestrator"], StepStatus | None]
    requires: Capability | None = None


@dataclass(frozen=True)
class StepRecord:
    name: str
    phase: Phase
    status: StepStatus
    detail: str | None = None


@dataclass
class SetupOutcome:
    state: LifecycleState
    phase: Phase
    steps: list[StepRecord] = field(default_factory=list)
    connection: ConnectionInfo | None = None
    error: SshdError | None = None

    @property
    def ok(self) -> bool:
        return self.phase is Phase.RUNNING

    @property
    def failed_step(self) -> StepRecord | None:
        for record in self.steps:
            if record.status is StepStatus.FAILED:
                return record
        return None


@dataclass
class TeardownOutcome:
    state: LifecycleState
    phase: Phase
    steps: list[StepRecord] = field(default_factory=list)

    @property
    def warnings(self) -> list[StepRecord]:
        return [record for record in self.steps if record.status is StepStatus.WARNED]


def _tail_lines(path: str, *, limit: int) -> list[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.read().splitlines()
    except OSError:
        return []
    return lines[-limit:]


class Orchestrator:
    """Drives the SSH server through setup and teardown for one platform profile.

    Both entry points take the persisted lifecycle state explicitly and return
    the new state together with the record of every step that ran. Whether a
    step failure aborts setup or only warns is decided by the step tables at
    the bottom of this module, nowhere else.
    """

    def __init__(
            self,
            profile: PlatformProfile,
            options: ServerOptions,
            *,
            shell: Shell | None = None,
            sink: OutputSink | None = None,
            probe: Callable[[str, int], bool] = check_tcp,
            daemon_lookup: Callable[[str], str | None] = shutil.which,
    ):
        self.profile = profile
        self.options = options
        self.shell = shell or Shell()
        self.sink = sink
        self.probe = probe
        self.daemon_lookup = daemon_lookup
        self.identity: ServerIdentity | None = None
        self.keys: authorized_keys.KeySet = ()
        self.connection: ConnectionInfo | None = None

    # -- setup ----------------------------------------------------------------

    def setup(
            self,
            state: LifecycleState,
            *,
            on_state: Callable[[LifecycleState], None] | None = None,
    ) -> SetupOutcome:
        if state is LifecycleState.SETUP_COMPLETE:
            logger.info("A previous setup attempt was recorded; re-running setup.")
        new_state = LifecycleState.SETUP_COMPLETE
        # must be persisted before the first effect
        if on_state is not None:
            on_state(new_state)

        outcome = SetupOutcome(state=new_state, phase=Phase.NOT_STARTED)
        for step in SETUP_STEPS:
            outcome.phase = step.phase
            record, error = self._run_step(step)
            outcome.steps.append(record)
            if error is not None:
                outcome.phase = Phase.FAILED
                outcome.error = error
                return outcome
        outcome.phase = Phase.RUNNING
        outcome.connection = self.connection
        return outcome

    def _run_step(self, step: Step) -> tuple[StepRecord, SshdError | None]:
        if step.requires is not None and not self.profile.has(step.requires):
            return StepRecord(step.name, step.phase, StepStatus.SKIPPED, "not needed on this platform"), None
        try:
            status = step.action(self) or StepStatus.DONE
        except SshdError as exc:
            if step.policy is FailurePolicy.WARN:
                logger.warning(f"{step.name}: {exc}")
                return StepRecord(step.name, step.phase, StepStatus.WARNED, str(exc)), None
            logger.debug(f"{step.name} failed: {exc}")
            return StepRecord(step.name, step.phase, StepStatus.FAILED, str(exc)), exc
        return StepRecord(step.name, step.phase, status), None

    def _run_recipes(self, capability: Capability, *, check: bool = True) -> None:
        for argv, recipe in self.profile.commands(capability, self.options):
            if recipe.detached:
                self.shell.spawn(argv, log_path=self.profile.log_path, privileged=recipe.privileged)
            else:
                self.shell.run(argv, privileged=recipe.privileged, check=check)

    def _daemon_present(self) -> bool:
        if os.path.exists(self.profile.daemon_path):
            return True
        return self.daemon_lookup("sshd") is not None

    def _install(self) -> StepStatus | None:
        if self._daemon_present():
            logger.info("SSH server is already installed.")
            return StepStatus.SKIPPED
        if not self.profile.has(Capability.INSTALL):
            raise InstallError(
                f"SSH server not found at {self.profile.daemon_path} and no installer is known for this platform."
            )
        logger.info(f"Installing OpenSSH server on {self.profile.family.value}")
        try:
            self._run_recipes(Capability.INSTALL)
        except CommandError as exc:
            raise InstallError(f"SSH server installation failed: {exc}") from exc
        return None

    def _host_keys(self) -> None:
        self.identity = ensure_host_keys(self.profile, self.options, self.shell)

    def _backup_config(self) -> StepStatus | None:
        system_config = self.profile.system_config_path or ""
        backup = self.profile.backup_config_path or ""
        if os.path.exists(backup):
            if self._owns_backup():
                logger.info(f"Config backup {backup} already exists.")
            else:
                logger.info(f"{backup} was not created by runner-sshd; it will be left alone.")
            return StepStatus.SKIPPED
        if not os.path.exists(system_config):
            logger.info(f"No system config at {system_config}; nothing to back up.")
            return StepStatus.SKIPPED
        try:
            self._run_recipes(Capability.BACKUP_CONFIG)
        except CommandError as exc:
            raise ConfigError(f"Could not back up {system_config}: {exc}") from exc
        marker = self.profile.backup_marker_path
        if marker and not self.shell.dry_run:
            try:
                write_file(marker, f"{backup}\n", mode=0o600)
            except OSError as exc:
                raise ConfigError(f"Could not record config backup in {marker}: {exc}") from exc
        return None

    def _owns_backup(self) -> bool:
        marker = self.profile.backup_marker_path
        return bool(marker) and os.path.exists(marker)

    def _write_config(self) -> None:
        text = sshd_config.render(self.profile, self.options)
        path = self.profile.config_path
        if self.shell.dry_run:
            logger.info(f"[dry-run] write {path}")
            return
        try:
            write_file(path, text, mode=0o644)
        except OSError as exc:
            raise ConfigError(f"Could not write {path}: {exc}") from exc
        logger.info(f"Wrote SSH server config to {path}")

    def _authorize(self) -> None:
        self.keys = authorized_keys.resolve(
            self.options.authorized_keys,
            self.options.use_remote_keys,
            self.options.remote_username,
            profile_url=self.options.profile_url,
        )
        content = "\n".join(self.keys) + "\n"
        paths = [self.profile.authorized_keys_path]
        if self.profile.admin_authorized_keys_path:
            paths.append(self.profile.admin_authorized_keys_path)
        for path in paths:
            if self.shell.dry_run:
                logger.info(f"[dry-run] write {len(self.keys)} keys to {path}")
                continue
            try:
                write_private_file(path, content)
            except OSError as exc:
                raise ConfigError(f"Could not write authorized keys to {path}: {exc}") from exc
        logger.info(f"Configured {len(self.keys)} authorized keys")

    def _harden_keys(self) -> None:
        self._run_recipes(Capability.HARDEN_KEYS)

    def _prepare_runtime(self) -> None:
        try:
            self._run_recipes(Capability.PREPARE_RUNTIME)
        except CommandError as exc:
            raise StartError(f"Could not create privilege separation directory: {exc}") from exc

    def _start(self) -> StepStatus | None:
        port = self.options.port
        if not self.shell.dry_run and self.probe("localhost", port):
            logger.info(f"Port {port} is already in use; stopping any previous SSH server first.")
            self._run_recipes(Capability.STOP, check=False)
            if not wait_for_port_closed(port, timeout=self.options.settle_seconds, probe=self.probe):
                raise StartError(f"Port {port} is already in use by another process.")
        logger.info(f"Starting SSH server on {self.profile.family.value}")
        try:
            self._run_recipes(Capability.START)
        except CommandError as exc:
            raise StartError(f"Could not start SSH server: {exc}") from exc
        return None

    def _verify(self) -> StepStatus | None:
        port = self.options.port
        if self.shell.dry_run:
            logger.info(f"[dry-run] probe localhost:{port}")
            return StepStatus.SKIPPED
        if not wait_for_port(port, timeout=self.options.settle_seconds, probe=self.probe):
            message = f"SSH server is not accepting connections on port {port}."
            tail = _tail_lines(self.profile.log_path, limit=VERIFY_LOG_TAIL)
            if tail:
                message = f"{message} Last log lines:\n" + "\n".join(tail)
            raise VerificationError(message)
        logger.info(f"SSH server is running on port {port}")
        return None

    def _export(self) -> None:
        self.connection = build_connection_info(self.profile, self.options)
        if self.sink is not None:
            publish(self.connection, self.sink)

    # -- teardown -------------------------------------------------------------

    def teardown(self, state: LifecycleState) -> TeardownOutcome:
        if state is LifecycleState.TORN_DOWN:
            logger.info("SSH server was already torn down.")
            return TeardownOutcome(state=state, phase=Phase.TORN_DOWN)
        if state is LifecycleState.NOT_STARTED:
            logger.warning("No setup attempt was recorded; skipping SSH server cleanup.")
            return TeardownOutcome(state=state, phase=Phase.NOT_STARTED)

        outcome = TeardownOutcome(state=state, phase=Phase.STOPPING_AND_RESTORING)
        logger.info("Cleaning up SSH server...")
        for step in TEARDOWN_STEPS:
            if step.requires is not None and not self.profile.has(step.requires):
                outcome.steps.append(StepRecord(step.name, step.phase, StepStatus.SKIPPED))
                continue
            try:
                status = step.action(self) or StepStatus.DONE
            except Exception as exc:  # teardown is best-effort, nothing may escape
                logger.warning(f"{step.name}: {exc}")
                outcome.steps.append(StepRecord(step.name, step.phase, StepStatus.WARNED, str(exc)))
                continue
            outcome.steps.append(StepRecord(step.name, step.phase, status))
        outcome.state = LifecycleState.TORN_DOWN
        outcome.phase = Phase.TORN_DOWN
        logger.info("SSH server cleanup completed")
        return outcome

    def _stop(self) -> None:
        try:
            self._run_recipes(Capability.STOP)
        except CommandError as exc:
            raise SshdError(f"Could not stop SSH server: {exc}") from exc

    def _restore_config(self) -> StepStatus | None:
        backup = self.profile.backup_config_path or ""
        if not os.path.exists(backup):
            logger.info("No config backup to restore.")
            return StepStatus.SKIPPED
        if not self._owns_backup():
            logger.info(f"{backup} was not created by runner-sshd; leaving the system config as is.")
            return StepStatus.SKIPPED
        try:
            self._run_recipes(Capability.RESTORE_CONFIG)
        except CommandError as exc:
            raise ConfigError(f"Could not restore original SSH config: {exc}") from exc
        if not self.shell.dry_run:
            os.remove(self.profile.backup_marker_path)
        return None


SETUP_STEPS: tuple[Step, ...] = (
    Step("install", Phase.INSTALLING, FailurePolicy.WARN, Orchestrator._install),
    Step("host-keys", Phase.CONFIGURING, FailurePolicy.FATAL, Orchestrator._host_keys),
    Step("backup-config", Phase.CONFIGURING, FailurePolicy.WARN, Orchestrator._backup_config,
         requires=Capability.BACKUP_CONFIG),
    Step("write-config", Phase.CONFIGURING, FailurePolicy.FATAL, Orchestrator._write_config),
    Step("authorize", Phase.AUTHORIZING, FailurePolicy.FATAL, Orchestrator._authorize),
    Step("harden-keys", Phase.AUTHORIZING, FailurePolicy.WARN, Orchestrator._harden_keys,
         requires=Capability.HARDEN_KEYS),
    Step("runtime-dir", Phase.STARTING, FailurePolicy.WARN, Orchestrator._prepare_runtime,
         requires=Capability.PREPARE_RUNTIME),
    Step("start", Phase.STARTING, FailurePolicy.FATAL, Orchestrator._start),
    Step("verify", Phase.VERIFYING, FailurePolicy.FATAL, Orchestrator._verify),
    Step("export", Phase.RUNNING, FailurePolicy.FATAL, Orchestrator._export),
)

TEARDOWN_STEPS: tuple[Step, ...] = (
    Step("stop", Phase.STOPPING_AND_RESTORING, FailurePolicy.WARN, Orchestrator._stop,
         requires=Capability.STOP),
    Step("restore-config", Phase.STOPPING_AND_RESTORING, FailurePolicy.WARN, Orchestrator._restore_config,
         requires=Capability.RESTORE_CONFIG),
)
