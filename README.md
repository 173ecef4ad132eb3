# ags

Helpers for running coding agents inside a podman sandbox. The package
loads and validates the sandbox TOML configuration, finds git metadata
that lives outside a working directory, and produces the shell
completion scripts, alias wrappers, image rebuild arguments and agent
install scripts that the sandbox needs.

It has no runtime dependencies beyond the Python 3.11 standard library.
Some functions start external programs (`git`, `podman`, `curl`,
`ssh-add`, `secret-tool`) and expect them on `PATH`.

## Configuration

```python
from pathlib import Path

from ags.config.parse import parse_and_validate_with_overlay

config = parse_and_validate_with_overlay(
    Path("~/.config/ags/config.toml").expanduser(),
    Path(".ags.toml"),
)
pi_dir = config.mount_host_for_container("/home/dev/.pi")
```

`ags.config.parse` also offers `parse_and_validate(path)` for a single
file, `parse_toml_str(content, config_path)` for a string, and
`merge_toml(base, overlay)` for merging two parsed documents.

An overlay file overrides scalar and table values of the base file,
while the top-level repeatable tables `[[mount]]`, `[[agent_mount]]`,
`[[tool]]` and `[[secret]]` are appended to those of the base. Paths
accept `~`, `$VAR` and `${VAR}`; undefined variables are left as
written (see `expand_env_vars` and `expand_path`).

Invalid values raise `ConfigValidationError`, unreadable files
`ConfigIOError`, and malformed TOML or fields of the wrong type
`ConfigTomlError`, all subclasses of `ConfigError` from
`ags.config.types`. That module also holds the validated result types
(`ValidatedConfig`, `ValidatedMount`, `ValidatedTool`,
`ValidatedSecret`, `BrowserConfig`, ...) and the `MountMode`,
`MountKind` and `MountWhen` enums.

## Git

```python
from pathlib import Path

from ags.git import discover_external_git_mounts, parse_dot_git_file, repo_root

mounts = discover_external_git_mounts(Path.cwd())
print(mounts.paths)          # git dirs of worktrees/submodules outside the workdir
print(repo_root(Path.cwd()))
print(parse_dot_git_file("gitdir: /repo/.git/worktrees/feature\n"))
```

`worktree_parent_repo_dir` returns the main repository root for a
linked worktree and `None` otherwise. `ensure_gitconfig` writes a
sandbox git config with SSH commit signing if none exists yet, taking
the user name and e-mail from the host's global git config.

## Shell integration

`ags.completions.render(shell)` returns the completion script for
`bash`, `zsh` or `fish`, and `run(shell)` writes it to standard output.

`ags.create_aliases.run(mode, shell=None, force=False)` writes managed
wrapper scripts into `~/.local/bin` (mode `wrappers`), keeps a managed
alias block in the shell's rc file (mode `aliases`), or both. Existing
files that are not managed wrappers, and existing symlinks, are skipped
unless `force` is set. `upsert_block` replaces an existing block in
place or appends a new one.

## Image and agent updates

```python
from pathlib import Path

from ags.update import build_podman_build_args, parse_latest_tag
from ags.update_agents import build_install_script

tag = parse_latest_tag('{"tag_name": "v0.1.24"}')
args = build_podman_build_args(
    "localhost/agent-sandbox:latest",
    Path("/tmp/Containerfile"),
    Path("/tmp"),
    tag, tag, tag,
    True,
)
script = build_install_script("@mariozechner/pi-coding-agent", 1440)
```

`ags.update.run(config, opts)` looks up the latest release tags with
`curl` and runs `podman build`; `ags.update_agents.run(config, opts)`
runs the install script in a throwaway `podman run` container.

## Health checks

`ags.doctor_util.Checker` collects OK, WARN and FAIL results and prints
them, coloured when stdout is a terminal. The module also holds the
probes such checks use: command lookup, executable and key-file tests,
git config reads, ssh-agent state, keyring lookups and local port
reachability.

## What this package does not do

There is no `ags` command-line program: no argument parsing and no
entry point. The completion scripts name subcommands such as `setup`,
`doctor` and `install`, but the package only provides the pieces listed
above, to be called from Python. It does not start the sandbox
container, run a full health-check report, generate SSH keys or manage
the ssh-agent itself.