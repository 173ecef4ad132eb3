"""Health-check reporting and the system probes used by ``ags doctor``."""

from __future__ import annotations

import os
import re
import shutil
import socket
import stat
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path

_PID_PATTERN = re.compile(r"\+?[0-9]+")


class Checker:
    """Counts OK / WARN / FAIL results and prints them, coloured on a terminal."""

    def __init__(self, use_color: bool | None = None) -> None:
        self.ok_count = 0
        self.warn_count = 0
        self.fail_count = 0
        if use_color is None:
            isatty = getattr(sys.stdout, "isatty", None)
            use_color = bool(isatty and isatty())
        self.use_color = use_color

    def _paint(self, code: str, text: str) -> str:
        return f"\x1b[{code}m{text}\x1b[0m" if self.use_color else text

    def section(self, title: str) -> None:
        print("\n" + self._paint("36", f"== {title} =="))

    def ok(self, msg: str) -> None:
        self.ok_count += 1
        print(f"{self._paint('32', '[OK]')} {msg}")

    def warn(self, msg: str) -> None:
        self.warn_count += 1
        print(f"{self._paint('33', '[WARN]')} {msg}")

    def fail(self, msg: str) -> None:
        self.fail_count += 1
        print(f"{self._paint('31', '[FAIL]')} {msg}")

    def print_summary(self) -> str:
        """Print the totals line and return it (without the leading blank line)."""
        counts = (
            ("32", self.ok_count, "ok"),
            ("33", self.warn_count, "warnings"),
            ("31", self.fail_count, "failures"),
        )
        totals = ", ".join(self._paint(code, f"{count} {label}") for code, count, label in counts)
        line = f"{self._paint('36', 'Summary:')} {totals}"
        print(f"\n{line}")
        return line


# --- system probes -----------------------------------------------------------


def has_command(name: str) -> bool:
    """Return True if ``name`` is an executable found on PATH."""
    return shutil.which(name) is not None


def is_executable(path: Path | str) -> bool:
    """Return True if ``path`` is a regular file with an execute bit set."""
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    return stat.S_ISREG(mode) and bool(mode & 0o111)


def check_required_cmd(checker: Checker, cmd: str) -> None:
    if has_command(cmd):
        checker.ok(f"binary available: {cmd}")
    else:
        checker.fail(f"missing required binary: {cmd}")


def check_optional_cmd(checker: Checker, cmd: str) -> None:
    if has_command(cmd):
        checker.ok(f"optional binary available: {cmd}")
    else:
        checker.warn(f"optional binary missing: {cmd}")


def _run(args: list[str], env: Mapping[str, str] | None = None):
    try:
        return subprocess.run(args, capture_output=True, check=False, env=env)
    except OSError:
        return None


def git_config_get(gitconfig: Path | str, key: str) -> str | None:
    """Read ``key`` from a specific git config file; None if unset or empty."""
    proc = _run(["git", "config", "-f", str(gitconfig), "--get", key])
    if proc is None or proc.returncode != 0:
        return None
    value = proc.stdout.decode("utf-8", errors="replace").strip()
    return value or None


def file_non_empty(path: Path | str) -> bool:
    try:
        return os.stat(path).st_size > 0
    except OSError:
        return False


def pub_key_path(key_path: Path | str) -> Path:
    """Return the public-key path belonging to a private key (``<key>.pub``)."""
    return Path(f"{os.fspath(key_path)}.pub")


def _parse_pid(text: str) -> int | None:
    if not _PID_PATTERN.fullmatch(text):
        return None
    value = int(text)
    return value if value < 2**32 else None


def read_agent_env(path: Path | str) -> tuple[str, int] | None:
    """Read SSH_AUTH_SOCK and SSH_AGENT_PID from an ssh-agent env file."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    sock: str | None = None
    pid: int | None = None
    for line in content.splitlines():
        line = line.strip()
        if line.startswith("SSH_AUTH_SOCK="):
            sock = line[len("SSH_AUTH_SOCK="):]
        elif line.startswith("SSH_AGENT_PID="):
            pid = _parse_pid(line[len("SSH_AGENT_PID="):])
    if sock is None or pid is None:
        return None
    return sock, pid


def is_pid_alive(pid: int) -> bool:
    """Return True if signal 0 can be delivered to ``pid``."""
    signed = pid & 0xFFFFFFFF
    if signed >= 2**31:
        signed -= 2**32
    try:
        os.kill(signed, 0)
    except OSError:
        return False
    return True


def socket_exists(path: Path | str) -> bool:
    try:
        return stat.S_ISSOCK(os.lstat(path).st_mode)
    except OSError:
        return False


def list_agent_keys(sock_path: Path | str) -> str | None:
    """Return ``ssh-add -L`` output for the agent at ``sock_path``."""
    env = dict(os.environ)
    env["SSH_AUTH_SOCK"] = os.fspath(sock_path)
    proc = _run(["ssh-add", "-L"], env=env)
    if proc is None or proc.returncode != 0:
        return None
    return proc.stdout.decode("utf-8", errors="replace")


def secret_tool_has_value(attributes: Mapping[str, str]) -> bool:
    """Return True if secret-tool finds a non-empty value for ``attributes``."""
    if not has_command("secret-tool") or not attributes:
        return False
    args = ["secret-tool", "lookup"]
    for key, value in sorted(attributes.items()):
        args.extend((key, value))
    proc = _run(args)
    return proc is not None and proc.returncode == 0 and bool(proc.stdout)


def is_port_open(port: int) -> bool:
    """Return True if a TCP connection to localhost:``port`` succeeds within a second."""
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=1):
            return True
    except OSError:
        return False