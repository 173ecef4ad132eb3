import os
import socket
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from ags.doctor_util import (
    Checker,
    check_optional_cmd,
    check_required_cmd,
    file_non_empty,
    git_config_get,
    has_command,
    is_executable,
    is_pid_alive,
    is_port_open,
    list_agent_keys,
    pub_key_path,
    read_agent_env,
    secret_tool_has_value,
    socket_exists,
)

MISSING_CMD = "ags-definitely-missing-command-xyz"


def _completed(returncode=0, stdout=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=b"")


def test_checker_plain_output_and_counts(capsys):
    ck = Checker(use_color=False)
    ck.section("Tooling")
    ck.ok("fine")
    ck.warn("careful")
    ck.fail("broken")
    ck.fail("broken again")
    out = capsys.readouterr().out
    assert "\n== Tooling ==\n" in out
    assert "[OK] fine\n" in out
    assert "[WARN] careful\n" in out
    assert "[FAIL] broken\n" in out
    assert (ck.ok_count, ck.warn_count, ck.fail_count) == (1, 1, 2)


def test_checker_summary_plain(capsys):
    ck = Checker(use_color=False)
    ck.ok("a")
    ck.warn("b")
    capsys.readouterr()
    ck.print_summary()
    out = capsys.readouterr().out
    assert out == f"\nSummary: {ck.ok_count} ok, {ck.warn_count} warnings, {ck.fail_count} failures\n"


def test_checker_colored_output(capsys):
    ck = Checker(use_color=True)
    ck.ok("msg")
    assert capsys.readouterr().out == "\x1b[32m[OK]\x1b[0m msg\n"


def test_check_required_cmd_missing_fails(capsys):
    ck = Checker(use_color=False)
    check_required_cmd(ck, MISSING_CMD)
    assert ck.fail_count == 1
    assert f"missing required binary: {MISSING_CMD}" in capsys.readouterr().out


def test_check_optional_cmd_missing_warns(capsys):
    ck = Checker(use_color=False)
    check_optional_cmd(ck, MISSING_CMD)
    assert ck.warn_count == 1 and ck.fail_count == 0
    assert f"optional binary missing: {MISSING_CMD}" in capsys.readouterr().out


def test_has_command_missing():
    assert has_command(MISSING_CMD) is False


def test_is_executable(tmp_path):
    script = tmp_path / "tool"
    script.write_text("#!/bin/sh\n")
    script.chmod(0o644)
    assert is_executable(script) is False
    script.chmod(0o755)
    assert is_executable(script) is True
    assert is_executable(tmp_path) is False
    assert is_executable(tmp_path / "missing") is False


def test_file_non_empty(tmp_path):
    empty = tmp_path / "empty"
    empty.write_text("")
    full = tmp_path / "full"
    full.write_text("data")
    assert file_non_empty(empty) is False
    assert file_non_empty(full) is True
    assert file_non_empty(tmp_path / "missing") is False


def test_pub_key_path_appends_suffix(tmp_path):
    key = tmp_path / "id_ed25519"
    assert pub_key_path(key) == tmp_path / "id_ed25519.pub"
    assert pub_key_path(str(key)).name == key.name + ".pub"


def test_read_agent_env_parses_values(tmp_path):
    env = tmp_path / "ssh-agent.env"
    env.write_text("SSH_AUTH_SOCK=/tmp/agent.sock\nSSH_AGENT_PID=1234\n")
    assert read_agent_env(env) == ("/tmp/agent.sock", 1234)


def test_read_agent_env_requires_both(tmp_path):
    env = tmp_path / "ssh-agent.env"
    env.write_text("SSH_AUTH_SOCK=/tmp/agent.sock\n")
    assert read_agent_env(env) is None
    env.write_text("SSH_AUTH_SOCK=/tmp/agent.sock\nSSH_AGENT_PID=abc\n")
    assert read_agent_env(env) is None
    assert read_agent_env(tmp_path / "missing.env") is None


def test_is_pid_alive_for_self():
    assert is_pid_alive(os.getpid()) is True


def test_socket_exists(tmp_path):
    sock_path = tmp_path / "s.sock"
    regular = tmp_path / "plain"
    regular.write_text("x")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        server.bind(str(sock_path))
        assert socket_exists(sock_path) is True
    finally:
        server.close()
    assert socket_exists(regular) is False
    assert socket_exists(tmp_path / "missing") is False


def test_is_port_open_with_listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        assert is_port_open(port) is True
    finally:
        server.close()


def test_git_config_get_reads_value(tmp_path):
    cfg = tmp_path / "gitconfig"
    with patch("ags.doctor_util.subprocess.run", return_value=_completed(0, b"ssh\n")) as run:
        assert git_config_get(cfg, "gpg.format") == "ssh"
    assert run.call_args.args[0] == ["git", "config", "-f", str(cfg), "--get", "gpg.format"]


@pytest.mark.parametrize(
    "result",
    [_completed(1, b"ssh\n"), _completed(0, b"  \n")],
)
def test_git_config_get_none_on_failure_or_empty(tmp_path, result):
    with patch("ags.doctor_util.subprocess.run", return_value=result):
        assert git_config_get(tmp_path / "gitconfig", "gpg.format") is None


def test_git_config_get_none_when_git_missing(tmp_path):
    with patch("ags.doctor_util.subprocess.run", side_effect=FileNotFoundError("git")):
        assert git_config_get(tmp_path / "gitconfig", "gpg.format") is None


def test_list_agent_keys_sets_socket(tmp_path):
    sock = tmp_path / "agent.sock"
    with patch("ags.doctor_util.subprocess.run", return_value=_completed(0, b"ssh-ed25519 AAAA\n")) as run:
        assert list_agent_keys(sock) == "ssh-ed25519 AAAA\n"
    assert run.call_args.args[0] == ["ssh-add", "-L"]
    assert run.call_args.kwargs["env"]["SSH_AUTH_SOCK"] == str(sock)


def test_list_agent_keys_none_on_failure(tmp_path):
    with patch("ags.doctor_util.subprocess.run", return_value=_completed(1)):
        assert list_agent_keys(tmp_path / "agent.sock") is None


def test_secret_tool_has_value_empty_attributes():
    assert secret_tool_has_value({}) is False


def test_secret_tool_has_value_sorted_lookup():
    with patch("ags.doctor_util.shutil.which", return_value="/usr/bin/secret-tool"), patch(
        "ags.doctor_util.subprocess.run", return_value=_completed(0, b"value")
    ) as run:
        assert secret_tool_has_value({"service": "ags", "account": "me"}) is True
    assert run.call_args.args[0] == ["secret-tool", "lookup", "account", "me", "service", "ags"]


def test_secret_tool_has_value_empty_output():
    with patch("ags.doctor_util.shutil.which", return_value="/usr/bin/secret-tool"), patch(
        "ags.doctor_util.subprocess.run", return_value=_completed(0, b"")
    ):
        assert secret_tool_has_value({"service": "ags"}) is False


def test_secret_tool_has_value_without_tool():
    with patch("ags.doctor_util.shutil.which", return_value=None):
        assert secret_tool_has_value({"service": "ags"}) is False