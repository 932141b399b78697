from __future__ import annotations

import typer

from runner_sshd import sshd_config
from runner_sshd.errors import InvalidOptions
from runner_sshd.platforms import Family, profile_for, select_profile

from .. import console
from ..config import config_path, load_defaults, resolve_options

app = typer.Typer(help="Inspect the generated SSH server configuration.")

_DISTROS = {"apt": "debian", "yum": "fedora", "apk": "alpine"}


@app.command("render", help="Print the sshd_config that setup would write.")
def render_config(
        platform_name: str | None = typer.Option(
            None,
            "--platform",
            help="Target platform: linux, macos or windows (default: this machine).",
        ),
        package_manager: str | None = typer.Option(
            None,
            "--package-manager",
            help="Linux package family used for the sftp-server path: apt, yum or apk.",
        ),
        port: str | None = typer.Option(None, "--port", "-p", envvar="INPUT_PORT", help="SSH server port."),
        ssh_user: str | None = typer.Option(None, "--ssh-user", envvar="INPUT_SSH-USER", help="Allowed account."),
) -> None:
    try:
        options = resolve_options(
            port=port,
            ssh_user=ssh_user,
            server_key=None,
            authorized_keys=None,
            use_actor_keys=False,
            remote_username=None,
        )
    except InvalidOptions as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)

    if platform_name is None:
        profile = select_profile()
    else:
        try:
            family = Family(platform_name.strip().lower())
        except ValueError:
            console.err(f"Unknown platform {platform_name!r}; expected linux, macos or windows.")
            raise typer.Exit(code=2)
        os_release = None
        if package_manager is not None:
            if package_manager not in _DISTROS:
                console.err(f"Unknown package manager {package_manager!r}; expected apt, yum or apk.")
                raise typer.Exit(code=2)
            os_release = f"id={_DISTROS[package_manager]}"
        profile = profile_for(family, os_release=os_release)
    typer.echo(sshd_config.render(profile, options), nl=False)


@app.command("path", help="Show the optional defaults file location.")
def show_path() -> None:
    console.print(config_path())


@app.command("show", help="Show resolved options and platform paths.")
def show_config() -> None:
    defaults = load_defaults()
    try:
        options = resolve_options(
            port=None,
            ssh_user=None,
            server_key=None,
            authorized_keys=None,
            use_actor_keys=False,
            remote_username=None,
            defaults=defaults,
        )
    except InvalidOptions as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    profile = select_profile()
    console.print_json(
        {
            "platform": profile.family.value,
            "package_manager": profile.package_manager,
            "port": options.port,
            "user": options.user,
            "profile_url": options.profile_url,
            "settle_seconds": options.settle_seconds,
            "config_path": profile.config_path,
            "host_key_dir": profile.host_key_dir,
            "authorized_keys_path": profile.authorized_keys_path,
            "sftp_subsystem_path": profile.sftp_subsystem_path,
            "uses_service_manager": profile.uses_service_manager,
        }
    )
