"""Create wrapper scripts and shell aliases for common agent invocations."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from ags.completions import Shell

WRAPPER_MARKER = "# AGS_MANAGED_ALIAS"
BLOCK_START = "# >>> ags managed aliases >>>"
BLOCK_END = "# <<< ags managed aliases <<<"


class AliasMode(StrEnum):
    """What create-aliases writes: wrapper scripts, an rc alias block, or both."""

    WRAPPERS = "wrappers"
    ALIASES = "aliases"
    BOTH = "both"

    @property
    def wants_wrappers(self) -> bool:
        return self in (AliasMode.WRAPPERS, AliasMode.BOTH)

    @property
    def wants_aliases(self) -> bool:
        return self in (AliasMode.ALIASES, AliasMode.BOTH)


class CreateAliasesError(Exception):
    """Raised when wrappers or aliases cannot be written."""

    @classmethod
    def home_dir(cls) -> CreateAliasesError:
        return cls("could not determine home directory")

    @classmethod
    def shell_autodetect(cls) -> CreateAliasesError:
        return cls("could not autodetect shell; use --shell fish|zsh|bash")


@dataclass(frozen=True)
class AliasSpec:
    name: str
    command: str


_CLAUDE = "ags --agent claude -- --model {} --strict-mcp-config --dangerously-skip-permissions"

ALIASES: tuple[AliasSpec, ...] = (
    # Short names
    AliasSpec("asco", _CLAUDE.format("opus")),
    AliasSpec("ascs", _CLAUDE.format("sonnet")),
    AliasSpec("asch", _CLAUDE.format("haiku")),
    AliasSpec("aspi", "ags --agent pi --"),
    AliasSpec("asoc", "ags --agent opencode --"),
    AliasSpec("asx", "ags --agent codex --"),
    AliasSpec("asg", "ags --agent gemini -- --yolo"),
    # Long names
    AliasSpec("ags-cc-opus", _CLAUDE.format("opus")),
    AliasSpec("ags-cc-sonnet", _CLAUDE.format("sonnet")),
    AliasSpec("ags-cc-haiku", _CLAUDE.format("haiku")),
    AliasSpec("ags-pi", "ags --agent pi --"),
    AliasSpec("ags-oc", "ags --agent opencode --"),
    AliasSpec("ags-cx", "ags --agent codex --"),
    AliasSpec("ags-gem-yolo", "ags --agent gemini -- --yolo"),
)


@dataclass
class ApplySummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0


@contextmanager
def _io(path: Path) -> Iterator[None]:
    try:
        yield
    except OSError as err:
        raise CreateAliasesError(f"{path}: {err}") from err


def _warn(message: str) -> None:
    print(f"warning: {message}", file=sys.stderr)


def run(
    mode: AliasMode | str, shell: Shell | str | None = None, force: bool = False
) -> None:
    """Write wrappers into ~/.local/bin and/or an alias block into the shell rc file."""
    mode = AliasMode(mode)
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as err:
        raise CreateAliasesError.home_dir() from err

    summary = ApplySummary()
    aliases_updated = False

    if mode.wants_wrappers:
        summary = apply_wrappers(home / ".local" / "bin", force)

    if mode.wants_aliases:
        target_shell = Shell(shell) if shell is not None else detect_shell()
        rc_path = shell_rc_path(home, target_shell)
        aliases_updated = upsert_shell_alias_block(rc_path, target_shell)
        print(f"Updated aliases in: {rc_path}")

    if mode.wants_wrappers:
        print(
            f"Wrappers: {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} skipped"
        )
    if mode.wants_aliases:
        print("Alias block written." if aliases_updated else "Alias block unchanged.")


def apply_wrappers(bin_dir: Path | str, force: bool) -> ApplySummary:
    """Write one wrapper script per alias into ``bin_dir``."""
    bin_dir = Path(bin_dir)
    with _io(bin_dir):
        bin_dir.mkdir(parents=True, exist_ok=True)

    summary = ApplySummary()
    for spec in ALIASES:
        target = bin_dir / spec.name

        if not os.path.lexists(target):
            write_wrapper(target, spec.command)
            summary.created += 1
            continue

        with _io(target):
            mode = target.lstat().st_mode

        if stat.S_ISDIR(mode):
            _warn(f"skipping {target}; path is a directory")
            summary.skipped += 1
        elif stat.S_ISLNK(mode):
            if not force:
                _warn(f"skipping {target}; existing symlink (use --force to replace)")
                summary.skipped += 1
                continue
            with _io(target):
                target.unlink()
            write_wrapper(target, spec.command)
            summary.updated += 1
        elif force or _file_contains_marker(target, WRAPPER_MARKER):
            write_wrapper(target, spec.command)
            summary.updated += 1
        else:
            _warn(
                f"skipping {target}; existing non-managed file (use --force to replace)"
            )
            summary.skipped += 1

    return summary


def write_wrapper(path: Path | str, command: str) -> None:
    """Write an executable bash wrapper that execs ``command`` with all arguments."""
    path = Path(path)
    content = (
        f"#!/usr/bin/env bash\n{WRAPPER_MARKER}\nset -euo pipefail\n"
        f'exec {command} "$@"\n'
    )
    with _io(path):
        path.write_bytes(content.encode("utf-8"))
        if os.name == "posix":
            path.chmod(0o755)
    print(f"Wrote wrapper: {path}")


def _file_contains_marker(path: Path, marker: str) -> bool:
    try:
        data = path.read_bytes()
    except OSError:
        return False
    return marker in data.decode("utf-8", errors="replace")


def upsert_shell_alias_block(path: Path | str, shell: Shell | str) -> bool:
    """Insert or replace the managed alias block; return True if the file changed."""
    path = Path(path)
    with _io(path.parent):
        path.parent.mkdir(parents=True, exist_ok=True)

    block = render_alias_block(shell)
    try:
        current = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError):
        current = ""
    updated = upsert_block(current, block)
    if updated == current:
        return False

    with _io(path):
        path.write_bytes(updated.encode("utf-8"))
    return True


def render_alias_block(shell: Shell | str) -> str:
    """Render the managed alias block; every supported shell uses ``alias name='cmd'``."""
    Shell(shell)
    lines = [BLOCK_START, "# Generated by `ags create-aliases`"]
    for spec in ALIASES:
        escaped = spec.command.replace("'", "'\\''")
        lines.append(f"alias {spec.name}='{escaped}'")
    lines.append(BLOCK_END)
    return "\n".join(lines) + "\n"


def upsert_block(current: str, block: str) -> str:
    """Replace an existing managed block in ``current`` or append ``block``."""
    start = current.find(BLOCK_START)
    if start != -1:
        end_marker = current.find(BLOCK_END, start)
        if end_marker != -1:
            end = end_marker + len(BLOCK_END)
            if current.startswith("\r\n", end):
                end += 2
            elif current.startswith("\n", end):
                end += 1
            return current[:start] + block + current[end:]

    if not current.strip():
        return block

    prefix = current if current.endswith("\n") else current + "\n"
    return prefix + "\n" + block


def detect_shell() -> Shell:
    """Determine the user's shell from ``$SHELL``."""
    raw = os.environ.get("SHELL")
    if raw is None:
        raise CreateAliasesError.shell_autodetect()
    try:
        return Shell(Path(raw).name)
    except ValueError:
        raise CreateAliasesError.shell_autodetect() from None


def shell_rc_path(home: Path | str, shell: Shell | str) -> Path:
    """Return the rc file that receives aliases for ``shell``."""
    home = Path(home)
    match Shell(shell):
        case Shell.FISH:
            return home / ".config" / "fish" / "config.fish"
        case Shell.ZSH:
            return home / ".zshrc"
        case Shell.BASH:
            return home / ".bashrc"