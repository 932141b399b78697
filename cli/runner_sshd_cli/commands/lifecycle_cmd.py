from __future__ import annotations

import typer

from runner_sshd.errors import InvalidOptions
from runner_sshd.export import ConnectionInfo
from runner_sshd.lifecycle import LifecycleState, Orchestrator
from runner_sshd.options import ServerOptions
from runner_sshd.platforms import PlatformProfile, select_profile
from runner_sshd.shell import Shell

from .. import console
from ..actions import ActionsFileError, CollectedOutputs, output_sink
from ..config import resolve_options
from ..state_store import ActionsStateStore, FileStateStore, open_state_store

PORT_OPTION = typer.Option(None, "--port", "-p", envvar="INPUT_PORT", help="Port for the SSH server (default 2222).")
USER_OPTION = typer.Option(
    None,
    "--ssh-user",
    envvar="INPUT_SSH-USER",
    help="Account allowed to log in (default: the current user, or ':current').",
)
SERVER_KEY_OPTION = typer.Option(
    None,
    "--server-key",
    envvar="INPUT_SERVER-KEY",
    help="Private host key to install instead of generating one.",
    show_default=False,
)
AUTHORIZED_KEYS_OPTION = typer.Option(
    None,
    "--authorized-keys",
    envvar=["INPUT_AUTHORIZED-KEYS", "INPUT_PUBLIC-KEYS"],
    help="Newline-separated public keys allowed to log in.",
    show_default=False,
)
ACTOR_KEYS_OPTION = typer.Option(
    False,
    "--use-actor-ssh-keys/--no-use-actor-ssh-keys",
    envvar="INPUT_USE-ACTOR-SSH-KEYS",
    help="Also authorize the public keys published for the remote username.",
)
REMOTE_USER_OPTION = typer.Option(
    None,
    "--remote-username",
    envvar="INPUT_REMOTE-USERNAME",
    help="Account whose published keys are fetched (default: $GITHUB_ACTOR).",
)
PROFILE_URL_OPTION = typer.Option(
    None,
    "--profile-url",
    help="Base URL serving <username>.keys (default: $GITHUB_SERVER_URL or https://github.com).",
)
DRY_RUN_OPTION = typer.Option(False, "--dry-run", help="Log commands and file writes without executing them.")
JSON_OPTION = typer.Option(False, "--json", help="Print connection info as JSON.")

StateStore = ActionsStateStore | FileStateStore


def _options_or_exit(**inputs) -> ServerOptions:
    try:
        return resolve_options(**inputs)
    except InvalidOptions as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)


def _recorder(store: StateStore):
    def _record(state: LifecycleState) -> None:
        try:
            store.save(state)
        except (OSError, ActionsFileError) as exc:
            console.warn(f"Could not record lifecycle state: {exc}")

    return _record


def _print_summary(info: ConnectionInfo) -> None:
    console.info("SSH Connection Info:")
    console.info(f"  Host: {info.hostname}")
    console.info(f"  Port: {info.port}")
    console.info(f"  User: {info.user}")
    console.info(f"  Command: {info.ssh_command}")
    for key in info.host_public_keys:
        console.info(f"  Host key ({key.type}): {key.content}")


def run_setup(
        profile: PlatformProfile,
        options: ServerOptions,
        store: StateStore,
        *,
        dry_run: bool = False,
        json_output: bool = False,
) -> None:
    sink = output_sink()
    orchestrator = Orchestrator(profile, options, shell=Shell(dry_run=dry_run), sink=sink)
    console.info(f"Setting up SSH server on {profile.family.value}")
    outcome = orchestrator.setup(store.load(), on_state=_recorder(store))
    if not outcome.ok:
        step = outcome.failed_step
        where = f" ({step.name})" if step else ""
        console.err(f"SSH server setup failed{where}: {outcome.error}")
        raise typer.Exit(code=1)
    if outcome.connection is not None:
        _print_summary(outcome.connection)
        if json_output and isinstance(sink, CollectedOutputs):
            console.print_json(sink.values)
    console.ok("SSH server setup completed successfully")


def run_teardown(
        profile: PlatformProfile,
        options: ServerOptions,
        store: StateStore,
        *,
        dry_run: bool = False,
) -> None:
    orchestrator = Orchestrator(profile, options, shell=Shell(dry_run=dry_run))
    outcome = orchestrator.teardown(store.load())
    _recorder(store)(outcome.state)
    if outcome.warnings:
        console.warn(f"SSH server cleanup finished with {len(outcome.warnings)} warning(s).")


def setup(
        port: str | None = PORT_OPTION,
        ssh_user: str | None = USER_OPTION,
        server_key: str | None = SERVER_KEY_OPTION,
        authorized_keys: str | None = AUTHORIZED_KEYS_OPTION,
        use_actor_ssh_keys: bool = ACTOR_KEYS_OPTION,
        remote_username: str | None = REMOTE_USER_OPTION,
        profile_url: str | None = PROFILE_URL_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
        json_output: bool = JSON_OPTION,
) -> None:
    """Install, configure and start the SSH server."""
    options = _options_or_exit(
        port=port,
        ssh_user=ssh_user,
        server_key=server_key,
        authorized_keys=authorized_keys,
        use_actor_keys=use_actor_ssh_keys,
        remote_username=remote_username,
        profile_url=profile_url,
    )
    run_setup(select_profile(), options, open_state_store(), dry_run=dry_run, json_output=json_output)


def teardown(
        port: str | None = PORT_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Stop the SSH server and restore the system config. Never fails."""
    try:
        options = resolve_options(
            port=port,
            ssh_user=None,
            server_key=None,
            authorized_keys=None,
            use_actor_keys=False,
            remote_username=None,
        )
    except InvalidOptions as exc:
        console.warn(f"Skipping SSH server cleanup: {exc}")
        return
    run_teardown(select_profile(), options, open_state_store(), dry_run=dry_run)


def run(
        port: str | None = PORT_OPTION,
        ssh_user: str | None = USER_OPTION,
        server_key: str | None = SERVER_KEY_OPTION,
        authorized_keys: str | None = AUTHORIZED_KEYS_OPTION,
        use_actor_ssh_keys: bool = ACTOR_KEYS_OPTION,
        remote_username: str | None = REMOTE_USER_OPTION,
        profile_url: str | None = PROFILE_URL_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
        json_output: bool = JSON_OPTION,
) -> None:
    """Set up the SSH server, or tear it down if a setup attempt was already recorded."""
    store = open_state_store()
    if store.load() is LifecycleState.SETUP_COMPLETE:
        teardown(port=port, dry_run=dry_run)
        return
    options = _options_or_exit(
        port=port,
        ssh_user=ssh_user,
        server_key=server_key,
        authorized_keys=authorized_keys,
        use_actor_keys=use_actor_ssh_keys,
        remote_username=remote_username,
        profile_url=profile_url,
    )
    run_setup(select_profile(), options, store, dry_run=dry_run, json_output=json_output)
