from __future__ import annotations

import typer

from .commands import config_cmd, lifecycle_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="runner-sshd",
        help="Ephemeral key-only SSH server for CI runners.",
        no_args_is_help=True,
    )

    app.command("setup")(lifecycle_cmd.setup)
    app.command("teardown")(lifecycle_cmd.teardown)
    app.command("run")(lifecycle_cmd.run)
    app.add_typer(config_cmd.app, name="config")

    @app.callback()
    def _main(
            verbose: bool = typer.Option(False, "-v", "--verbose", envvar="RUNNER_DEBUG", help="Verbose logs."),
    ):
        setup_logging(verbose)

    return app


app = _build_app()
