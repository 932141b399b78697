import logging
import re

from runner_sshd.options import build_options
from runner_sshd.platforms import (
    Capability,
    Family,
    detect_family,
    detect_package_manager,
    linux_profile,
    macos_profile,
    read_os_release,
    select_profile,
    windows_profile,
)


def test_detect_family_maps_known_systems() -> None:
    assert detect_family("Windows") is Family.WINDOWS
    assert detect_family("Darwin") is Family.MACOS
    assert detect_family("Linux") is Family.LINUX
    assert detect_family("SunOS") is None


def test_detect_package_manager_from_os_release() -> None:
    assert detect_package_manager('NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian') == "apt"
    assert detect_package_manager("ID=debian") == "apt"
    assert detect_package_manager('ID="rhel"\nID_LIKE="fedora"') == "yum"
    assert detect_package_manager("ID=fedora") == "yum"
    assert detect_package_manager("ID=alpine") == "apk"
    assert detect_package_manager("ID=arch") is None


def test_read_os_release_missing_file_is_unknown(tmp_path) -> None:
    assert read_os_release(str(tmp_path / "missing")) == "unknown"


def test_linux_profile_uses_custom_config_and_backup(tmp_path) -> None:
    profile = linux_profile(home="/home/runner", os_release="id=ubuntu")

    assert profile.config_path == "/home/runner/.ssh/sshd_config_custom"
    assert profile.authorized_keys_path == "/home/runner/.ssh/authorized_keys"
    assert profile.host_key_path == "/home/runner/.ssh/ssh_host_ed25519_key"
    assert profile.system_config_path == "/etc/ssh/sshd_config"
    assert profile.backup_config_path == "/etc/ssh/sshd_config.backup"
    assert profile.sftp_subsystem_path == "/usr/lib/openssh/sftp-server"
    assert not profile.uses_service_manager


def test_linux_install_recipes_follow_package_manager() -> None:
    options = build_options(ssh_user="runner")

    apt = linux_profile(home="/h", os_release="id=debian").commands(Capability.INSTALL, options)
    yum = linux_profile(home="/h", os_release="id=centos").commands(Capability.INSTALL, options)
    apk = linux_profile(home="/h", os_release="id=alpine").commands(Capability.INSTALL, options)

    assert [argv for argv, _ in apt] == [["apt-get", "update"], ["apt-get", "install", "-y", "openssh-server"]]
    assert [argv for argv, _ in yum] == [["yum", "install", "-y", "openssh-server"]]
    assert [argv for argv, _ in apk] == [["apk", "add", "openssh-server"]]
    assert all(recipe.privileged for _, recipe in apt + yum + apk)


def test_unknown_distro_has_no_installer_and_warns(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        profile = select_profile(system="Linux", home="/h", os_release="id=nixos")

    assert profile.family is Family.LINUX
    assert not profile.has(Capability.INSTALL)
    assert profile.sftp_subsystem_path == "internal-sftp"
    assert "Unrecognized Linux distribution" in caplog.text


def test_unknown_platform_falls_back_to_linux(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        profile = select_profile(system="FreeBSD", home="/h", os_release="id=debian")

    assert profile.family is Family.LINUX
    assert "falling back to Linux" in caplog.text


def test_windows_profile_defers_key_generation_to_service() -> None:
    profile = windows_profile()

    assert profile.uses_service_manager
    assert not profile.has(Capability.KEYGEN)
    assert profile.config_path == r"C:\ProgramData\ssh\sshd_config"
    assert profile.host_key_path == r"C:\ProgramData\ssh\ssh_host_ed25519_key"
    assert profile.admin_authorized_keys_path == r"C:\ProgramData\ssh\administrators_authorized_keys"
    assert profile.host_public_key_paths()[0] == ("rsa", r"C:\ProgramData\ssh\ssh_host_rsa_key.pub")


def test_unix_start_and_stop_render_port() -> None:
    profile = macos_profile(home="/Users/runner")
    options = build_options(port=2345, ssh_user="runner")

    [(start, start_recipe)] = profile.commands(Capability.START, options)
    [(stop, _)] = profile.commands(Capability.STOP, options)

    assert start == ["/usr/sbin/sshd", "-D", "-e", "-f", "/Users/runner/.ssh/sshd_config", "-p", "2345"]
    assert start_recipe.detached and start_recipe.privileged
    assert stop == ["pkill", "-f", "[s]shd .*-p 2345( |$)"]
    assert not profile.has(Capability.INSTALL)


def test_stop_pattern_matches_listener_title_only_for_its_port() -> None:
    options = build_options(port=24222, ssh_user="runner")
    [(stop, _)] = linux_profile(home="/root", os_release="id=ubuntu").commands(Capability.STOP, options)
    pattern = re.compile(stop[-1])

    assert pattern.search("/usr/sbin/sshd -D -e -f /root/.ssh/sshd_config_custom -p 24222")
    assert pattern.search(
        "sshd: /usr/sbin/sshd -D -e -f /root/.ssh/sshd_config_custom -p 24222 [listener] 0 of 10-100 startups"
    )
    assert not pattern.search("sshd: /usr/sbin/sshd -D -e -f /root/.ssh/sshd_config_custom -p 242220")
    assert not pattern.search("pkill -f [s]shd .*-p 24222( |$)")
