"""Git helpers: sandbox gitconfig creation and repository metadata discovery."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_NAME = "Agent Sandbox Agent"
DEFAULT_EMAIL = "agent@example.com"


class GitError(Exception):
    """Raised when a git-related file operation fails."""


@dataclass
class ExternalGitMounts:
    """Paths outside the workdir that must be mounted for git to work."""

    paths: list[Path] = field(default_factory=list)


def _run_git(*args: str) -> subprocess.CompletedProcess[bytes] | None:
    try:
        return subprocess.run(["git", *args], capture_output=True, check=False)
    except OSError:
        return None


def _stdout_path(proc: subprocess.CompletedProcess[bytes] | None) -> Path | None:
    if proc is None or proc.returncode != 0:
        return None
    text = proc.stdout.decode("utf-8", errors="replace").strip()
    return Path(text) if text else None


def _git_global_config(key: str) -> str | None:
    proc = _run_git("config", "--global", key)
    if proc is None or proc.returncode != 0:
        return None
    value = proc.stdout.decode("utf-8", errors="replace").strip()
    return value or None


def ensure_gitconfig(gitconfig_path: Path | str, sign_key_container: str) -> None:
    """Create the sandbox gitconfig with SSH signing if it does not exist yet."""
    path = Path(gitconfig_path)
    if path.exists():
        return

    name = _git_global_config("user.name") or DEFAULT_NAME
    email = _git_global_config("user.email") or DEFAULT_EMAIL
    content = (
        "[user]\n"
        f"    name = {name}\n"
        f"    email = {email}\n"
        f"    signingkey = {sign_key_container}\n"
        "[commit]\n"
        "    gpgsign = true\n"
        "[gpg]\n"
        "    format = ssh\n"
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if os.name == "posix":
            path.chmod(0o600)
    except OSError as err:
        raise GitError(f"git I/O error: {err}") from err


def _is_inside_work_tree(workdir: Path) -> bool:
    proc = _run_git("-C", str(workdir), "rev-parse", "--is-inside-work-tree")
    return proc is not None and proc.returncode == 0


def _resolve_or_keep(path: Path) -> Path:
    try:
        return path.resolve(strict=True)
    except OSError:
        return path


def _resolve_absolute_git_dir(workdir: Path) -> Path | None:
    wd = str(workdir)
    proc = _run_git("-C", wd, "rev-parse", "--path-format=absolute", "--absolute-git-dir")
    if proc is None:
        return None
    if proc.returncode != 0:
        # Older git without --path-format.
        return _stdout_path(_run_git("-C", wd, "rev-parse", "--absolute-git-dir"))
    return _stdout_path(proc)


def _resolve_rev_parse_path(workdir: Path, flag: str) -> Path | None:
    wd = str(workdir)
    proc = _run_git("-C", wd, "rev-parse", "--path-format=absolute", flag)
    if proc is None:
        return None
    found = _stdout_path(proc)
    if found is not None and found.is_absolute():
        return found

    proc = _run_git("-C", wd, "rev-parse", flag)
    raw = _stdout_path(proc)
    if raw is None:
        return None
    if raw.is_absolute():
        return raw
    return _resolve_or_keep(workdir / raw)


def _has_git_worktrees_segment(path: Path) -> bool:
    prev_dot_git = False
    for part in path.parts:
        if part in (".", "..") or part == path.anchor:
            prev_dot_git = False
            continue
        if prev_dot_git and part == "worktrees":
            return True
        prev_dot_git = part == ".git"
    return False


def _path_is_within(child: Path, parent: Path) -> bool:
    return child == parent or child.is_relative_to(parent)


def _try_add_mount(found: set[Path], candidate: Path, workdir: Path) -> None:
    try:
        resolved = candidate.resolve(strict=True)
    except OSError:
        return
    if not resolved.is_dir():
        return
    if _path_is_within(resolved, _resolve_or_keep(workdir)):
        return
    found.add(resolved)


def discover_external_git_mounts(workdir: Path | str) -> ExternalGitMounts:
    """Find git metadata directories (worktrees, submodules) outside ``workdir``."""
    workdir = Path(workdir)
    if not _is_inside_work_tree(workdir):
        return ExternalGitMounts()

    found: set[Path] = set()
    git_dir = _resolve_absolute_git_dir(workdir)
    if git_dir is not None:
        _try_add_mount(found, git_dir, workdir)
    common_dir = _resolve_rev_parse_path(workdir, "--git-common-dir")
    if common_dir is not None:
        _try_add_mount(found, common_dir, workdir)
    return ExternalGitMounts(paths=sorted(found))


def repo_root(workdir: Path | str) -> Path | None:
    """Return the checked-out repository root (the worktree root for worktrees)."""
    workdir = Path(workdir)
    if not _is_inside_work_tree(workdir):
        return None
    return _resolve_rev_parse_path(workdir, "--show-toplevel")


def worktree_parent_repo_dir(workdir: Path | str) -> Path | None:
    """For a linked worktree, return the main repository root; otherwise None."""
    workdir = Path(workdir)
    if not _is_inside_work_tree(workdir):
        return None
    git_dir = _resolve_absolute_git_dir(workdir)
    if git_dir is None or not _has_git_worktrees_segment(git_dir):
        return None
    common_dir = _resolve_rev_parse_path(workdir, "--git-common-dir")
    if common_dir is None or common_dir.parent == common_dir:
        return None
    return common_dir.parent


def parse_dot_git_file(content: str) -> Path | None:
    """Extract the path from a ``gitdir: <path>`` line in a ``.git`` file."""
    lines = content.splitlines()
    if not lines:
        return None
    line = lines[0].strip()
    if not line.startswith("gitdir:"):
        return None
    path_str = line[len("gitdir:"):].strip()
    return Path(path_str) if path_str else None