from __future__ import annotations

from .options import ServerOptions
from .platforms import WINDOWS_ADMIN_KEYS_DIRECTIVE, Family, PlatformProfile

USER_AUTHORIZED_KEYS = ".ssh/authorized_keys"

CLIENT_ALIVE_INTERVAL = 60
CLIENT_ALIVE_COUNT_MAX = 3
MAX_AUTH_TRIES = 3
MAX_SESSIONS = 4


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def render(profile: PlatformProfile, options: ServerOptions) -> str:
    """Render a complete sshd_config for the profile.

    Pure: the same profile and options always produce the same text. Password
    authentication is always off and AllowUsers always names exactly one user.
    """
    lines = [
        "# Ephemeral CI SSH server configuration (generated, do not edit)",
        f"Port {options.port}",
        "Protocol 2",
        f"HostKey {profile.host_key_path}",
        f"AuthorizedKeysFile {profile.authorized_keys_path} {USER_AUTHORIZED_KEYS}",
        "",
        "# Authentication",
        "PermitRootLogin no",
        "PasswordAuthentication no",
        "PermitEmptyPasswords no",
        "PubkeyAuthentication yes",
        "ChallengeResponseAuthentication no",
        "KbdInteractiveAuthentication no",
        f"UsePAM {_yes_no(profile.use_pam)}",
        "",
        "# Logging",
        "SyslogFacility AUTH",
        "LogLevel INFO",
        "",
        "# Connection limits",
        f"ClientAliveInterval {CLIENT_ALIVE_INTERVAL}",
        f"ClientAliveCountMax {CLIENT_ALIVE_COUNT_MAX}",
        f"MaxAuthTries {MAX_AUTH_TRIES}",
        f"MaxSessions {MAX_SESSIONS}",
        "",
        "# Forwarding",
        "X11Forwarding no",
        "AllowAgentForwarding no",
        "AllowTcpForwarding yes",
        "GatewayPorts no",
        "PermitTunnel no",
        "",
        f"AllowUsers {options.user}",
        f"Subsystem sftp {profile.sftp_subsystem_path}",
    ]
    if profile.family is Family.WINDOWS:
        lines += [
            "",
            "Match Group administrators",
            f"    AuthorizedKeysFile {WINDOWS_ADMIN_KEYS_DIRECTIVE}",
        ]
    return "\n".join(lines) + "\n"
