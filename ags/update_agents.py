"""Install or update the agent CLIs inside persistent volumes."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass

from ags.config.types import ValidatedConfig

_PNPM_DIR = "/usr/local/pnpm"
_PNPM_ENV = f"PNPM_HOME={_PNPM_DIR} PATH={_PNPM_DIR}:$PATH"
_CLAUDE_DIR = "/opt/claude-home"
_CLAUDE_BIN_DIR = f"{_CLAUDE_DIR}/.local/bin"
_CLAUDE_ENV = 'HOME="$CLAUDE_HOME" PATH="$CLAUDE_HOME/.local/bin:$PATH"'
_CLAUDE_INSTALLER = "curl -fsSL https://claude.ai/install.sh | bash"
_AGENT_PACKAGES = ("@openai/codex", "@google/gemini-cli", "opencode-ai")


class UpdateAgentsError(Exception):
    """Raised when agent CLIs cannot be installed or updated."""

    @classmethod
    def host_dir_create(cls, msg: str) -> UpdateAgentsError:
        return cls(f"failed to create host directory: {msg}")

    @classmethod
    def install_failed(cls, msg: str) -> UpdateAgentsError:
        return cls(f"agent install failed: {msg}")


@dataclass
class UpdateAgentsOptions:
    pi_spec: str | None = None
    minimum_release_age: int | None = None


def _describe_status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def run(config: ValidatedConfig, opts: UpdateAgentsOptions | None = None) -> None:
    """Install or update all agents in persistent volumes via a throwaway container."""
    opts = opts or UpdateAgentsOptions()
    cache_dir = config.sandbox.cache_dir
    image = config.sandbox.image

    pnpm_home = cache_dir / "pnpm-home"
    claude_install = cache_dir / "claude-install"

    for directory in (pnpm_home, claude_install):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise UpdateAgentsError.host_dir_create(f"{directory}: {err}") from err

    pi_spec = opts.pi_spec if opts.pi_spec is not None else config.update.pi_spec
    release_age = (
        opts.minimum_release_age
        if opts.minimum_release_age is not None
        else config.update.minimum_release_age
    )

    script = build_install_script(pi_spec, release_age)

    print("Installing/updating agents in volumes...")
    print(f"  PI spec: {pi_spec}")
    print(f"  pnpm minimum-release-age: {release_age}")

    args = [
        "podman",
        "run",
        "--rm",
        "-it",
        "--userns=keep-id",
        "-v",
        f"{pnpm_home}:{_PNPM_DIR}:rw,z",
        "-v",
        f"{claude_install}:{_CLAUDE_DIR}:rw,z",
        image,
        "bash",
        "-c",
        script,
    ]
    try:
        proc = subprocess.run(args, check=False)
    except OSError as err:
        raise UpdateAgentsError.install_failed(str(err)) from err
    if proc.returncode != 0:
        raise UpdateAgentsError.install_failed(
            f"exited with {_describe_status(proc.returncode)}"
        )

    print("\nDone. Agents updated in volumes.")
    print("Verify with: ags --agent pi -- --version")


def _continued(*lines: str) -> str:
    """Join lines with shell line continuations."""
    return " \\\n".join(lines)


def _pnpm_step(pi_spec: str) -> str:
    packages = " ".join((pi_spec, *_AGENT_PACKAGES))
    fallback_msg = "[ags] pnpm add -g failed (release too new?); using existing installs"
    return _continued(
        f"({_PNPM_ENV}",
        f"  pnpm add -g --store-dir {_PNPM_DIR}/.store",
        f"    {packages} ||",
        f"  (echo '{fallback_msg}' >&2 &&",
        f"   {_PNPM_ENV} command -v pi >/dev/null 2>&1))",
    )


def _claude_step() -> str:
    return _continued(
        'if [ -x "$CLAUDE_BIN" ]; then',
        f'  {_CLAUDE_ENV} "$CLAUDE_BIN" update ||',
        "  (echo 'claude update failed; reinstalling via install.sh' >&2 &&",
        f"   export {_CLAUDE_ENV} &&",
        f"   {_CLAUDE_INSTALLER});",
        "else",
        f"  export {_CLAUDE_ENV} &&",
        f"  {_CLAUDE_INSTALLER};",
        "fi",
    )


def _claude_wrapper_step() -> str:
    wrapper_lines = (
        "#!/usr/bin/env bash",
        f"export PATH={_CLAUDE_BIN_DIR}:$PATH",
        f'exec {_CLAUDE_BIN_DIR}/claude "$@"',
    )
    quoted = " ".join(f"'{line}'" for line in wrapper_lines)
    return f"printf '%s\\n' {quoted} > {_PNPM_DIR}/claude"


def build_install_script(pi_spec: str, release_age: int) -> str:
    """Return the bash script run inside the throwaway install container."""
    self_update_msg = (
        "[ags] pnpm self-update skipped (release too new?); using existing version"
    )
    steps = [
        "set -e",
        'mkdir -p "$HOME/.config/pnpm"',
        "printf 'minimum-release-age=%s\\nignore-scripts=true\\n' "
        f"'{release_age}' > \"$HOME/.config/pnpm/rc\"",
        f"(pnpm self-update || echo '{self_update_msg}' >&2)",
        _pnpm_step(pi_spec),
        f"CLAUDE_HOME={_CLAUDE_DIR}",
        'CLAUDE_BIN="$CLAUDE_HOME/.local/bin/claude"',
        _claude_step(),
        '[ -x "$CLAUDE_BIN" ]',
        f"rm -f {_PNPM_DIR}/claude",
        _claude_wrapper_step(),
        f"chmod +x {_PNPM_DIR}/claude",
    ]
    return " && \\\n".join(steps)