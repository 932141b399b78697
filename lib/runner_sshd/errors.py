from __future__ import annotations


class SshdError(Exception):
    """Base error."""


class InvalidOptions(SshdError):
    """Option values that cannot be turned into a server configuration."""


class CommandError(SshdError):
    def __init__(self, argv: list[str], returncode: int, stderr: str | None = None):
        detail = (stderr or "").strip()
        message = f"`{' '.join(argv)}` exited with {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.argv = argv
        self.returncode = returncode
        self.stderr = detail


class InstallError(SshdError):
    """SSH daemon could not be installed or located."""


class KeyFetchError(SshdError):
    """Remote public key lookup failed."""


class NoAuthorizedKeys(SshdError):
    """No authorized key survived resolution."""


class HostKeyError(SshdError):
    """Host identity key could not be generated or installed."""


class ConfigError(SshdError):
    """Daemon configuration could not be written."""


class StartError(SshdError):
    """Daemon could not be launched."""


class VerificationError(SshdError):
    """Daemon is not accepting connections on the configured port."""
