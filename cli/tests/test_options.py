import pytest

from runner_sshd import options as options_mod
from runner_sshd.errors import InvalidOptions
from runner_sshd.options import CURRENT_USER, build_options


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(options_mod.getpass, "getuser", lambda: "runner")

    opts = build_options()

    assert opts.port == 2222
    assert opts.user == "runner"
    assert opts.server_key is None
    assert opts.use_remote_keys is False
    assert opts.profile_url == "https://github.com"


def test_current_user_sentinel(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(options_mod.getpass, "getuser", lambda: "builder")

    assert build_options(ssh_user=CURRENT_USER).user == "builder"
    assert build_options(ssh_user="  ").user == "builder"
    assert build_options(ssh_user="deploy").user == "deploy"


@pytest.mark.parametrize("raw", ["0", "65536", "ssh", "-1"])
def test_invalid_port_rejected(raw: str) -> None:
    with pytest.raises(InvalidOptions):
        build_options(port=raw, ssh_user="runner")


def test_port_accepts_string_input() -> None:
    assert build_options(port=" 2200 ", ssh_user="runner").port == 2200


def test_user_cannot_smuggle_directives() -> None:
    with pytest.raises(InvalidOptions):
        build_options(ssh_user="runner\nPasswordAuthentication yes")
    with pytest.raises(InvalidOptions):
        build_options(ssh_user="alice bob")


def test_server_key_gets_trailing_newline() -> None:
    opts = build_options(ssh_user="runner", server_key="-----BEGIN KEY-----\nabc\n-----END KEY-----")
    assert opts.server_key.endswith("-----END KEY-----\n")
    assert build_options(ssh_user="runner", server_key="   ").server_key is None


def test_profile_url_trailing_slash_trimmed() -> None:
    assert build_options(ssh_user="runner", profile_url="https://git.example.com/").profile_url == (
        "https://git.example.com"
    )
