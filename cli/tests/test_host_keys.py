import os
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, PublicFormat

from runner_sshd.export import collect_host_keys
from runner_sshd.host_keys import derive_public_key, ensure_host_keys
from runner_sshd.options import build_options


def _openssh_key() -> tuple[str, str]:
    key = Ed25519PrivateKey.generate()
    private = key.private_bytes(Encoding.PEM, PrivateFormat.OpenSSH, NoEncryption()).decode("ascii")
    public = key.public_key().public_bytes(Encoding.OpenSSH, PublicFormat.OpenSSH).decode("ascii")
    return private, public


def test_derive_public_key_from_openssh_private_key() -> None:
    private, public = _openssh_key()
    assert derive_public_key(private) == public


def test_supplied_key_written_private_with_public_half(linux_tmp_profile, fake_shell) -> None:
    private, public = _openssh_key()
    options = build_options(ssh_user="runner", server_key=private.strip())

    identity = ensure_host_keys(linux_tmp_profile, options, fake_shell)

    assert identity.source == "supplied"
    key_path = Path(linux_tmp_profile.host_key_path)
    assert key_path.read_text(encoding="utf-8").endswith("-----END OPENSSH PRIVATE KEY-----\n")
    assert oct(os.stat(key_path).st_mode & 0o777) == "0o600"
    assert Path(identity.public_key_path).read_text(encoding="utf-8") == public + "\n"
    assert fake_shell.ran("ssh-keygen") == []


def test_unparseable_supplied_key_still_installed(linux_tmp_profile, fake_shell, caplog) -> None:
    options = build_options(ssh_user="runner", server_key="not a key")

    identity = ensure_host_keys(linux_tmp_profile, options, fake_shell)

    assert identity.source == "supplied"
    assert Path(linux_tmp_profile.host_key_path).read_text(encoding="utf-8") == "not a key\n"
    assert "Could not derive a public key" in caplog.text


def test_existing_key_is_reused(linux_tmp_profile, fake_shell) -> None:
    key_path = Path(linux_tmp_profile.host_key_path)
    key_path.parent.mkdir(parents=True)
    key_path.write_text("EXISTING\n", encoding="utf-8")

    identity = ensure_host_keys(linux_tmp_profile, build_options(ssh_user="runner"), fake_shell)

    assert identity.source == "existing"
    assert key_path.read_text(encoding="utf-8") == "EXISTING\n"
    assert fake_shell.calls == []


def test_generates_ed25519_key(linux_tmp_profile, fake_shell) -> None:
    identity = ensure_host_keys(linux_tmp_profile, build_options(ssh_user="runner"), fake_shell)

    assert identity.source == "generated"
    [call] = fake_shell.ran("ssh-keygen")
    assert call[call.index("-t") + 1] == "ed25519"
    assert oct(os.stat(linux_tmp_profile.host_key_dir).st_mode & 0o777) == "0o700"


def test_windows_leaves_generation_to_service(windows_tmp_profile, fake_shell) -> None:
    identity = ensure_host_keys(windows_tmp_profile, build_options(ssh_user="runner"), fake_shell)

    assert identity.source == "service"
    assert fake_shell.calls == []


def test_supplied_rsa_key_exported_as_rsa(linux_tmp_profile, fake_shell) -> None:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private = key.private_bytes(Encoding.PEM, PrivateFormat.TraditionalOpenSSL, NoEncryption()).decode("ascii")

    ensure_host_keys(linux_tmp_profile, build_options(ssh_user="runner", server_key=private), fake_shell)
    [exported] = collect_host_keys(linux_tmp_profile)

    assert exported.type == "rsa"
    assert exported.content.startswith("ssh-rsa ")
