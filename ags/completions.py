"""Shell completion scripts for the ags command line.

The scripts are generated from one description of the command line, so the
three shells always offer the same subcommands, flags and values.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import StrEnum


class Shell(StrEnum):
    """Shells that ags can generate completions and aliases for."""

    FISH = "fish"
    ZSH = "zsh"
    BASH = "bash"


_CHOICES: dict[str, tuple[str, ...]] = {
    "agents": ("pi", "claude", "codex", "gemini", "opencode", "shell"),
    "shells": ("fish", "zsh", "bash"),
    "modes": ("wrappers", "aliases", "both"),
}


@dataclass(frozen=True)
class _Option:
    name: str
    help: str
    short: str | None = None
    choices: str | None = None
    path: str | None = None  # "file" or "dir"

    @property
    def takes_value(self) -> bool:
        return self.choices is not None or self.path is not None

    @property
    def spellings(self) -> list[str]:
        names = [f"--{self.name}"]
        if self.short:
            names.append(f"-{self.short}")
        return names


@dataclass(frozen=True)
class _Command:
    name: str
    help: str
    options: tuple[_Option, ...] = ()


_RUN_OPTIONS = (
    _Option("agent", "Agent to run", choices="agents"),
    _Option("browser", "Enable browser sidecar"),
    _Option("tmux", "Launch the agent inside a tmux session"),
    _Option("psp", "Enable podman-socket-proxy mode"),
    _Option("psp-keep", "Keep PSP-managed containers on exit (debug)"),
    _Option("config", "Override config file path", path="file"),
    _Option("add-dir", "Add an extra same-path directory mount for this run", short="d", path="dir"),
)

_COMMANDS = (
    _Command("setup", "Generate SSH keys and configure secrets"),
    _Command("doctor", "Run environment and config health checks"),
    _Command("update", "Rebuild sandbox image"),
    _Command("update-agents", "Install/update agent CLIs"),
    _Command(
        "install",
        "Install assets/config layout",
        (
            _Option("link-self", "Link current ags executable to ~/.local/bin/ags"),
            _Option("force", "Replace existing ~/.local/bin/ags when used with --link-self"),
            _Option(
                "add-agent-mounts",
                "Append default [[agent_mount]] entries to ~/.config/ags/config.toml",
            ),
        ),
    ),
    _Command("uninstall", "Reserved no-op"),
    _Command(
        "create-aliases",
        "Create wrappers and/or aliases",
        (
            _Option("shell", "Target shell", choices="shells"),
            _Option("mode", "Alias generation mode", choices="modes"),
            _Option("force", "Replace existing non-managed targets"),
        ),
    ),
    _Command(
        "completions",
        "Print completion script",
        (_Option("shell", "Shell to generate completion script for", choices="shells"),),
    ),
)

_HELP_WORDS = "-h --help"


def _option_words(options: tuple[_Option, ...]) -> str:
    return " ".join(name for opt in options for name in opt.spellings)


# --- bash --------------------------------------------------------------------


def _bash_value_reply(opt: _Option, word: str) -> str:
    if opt.choices is not None:
        return f'COMPREPLY=( $(compgen -W "${opt.choices}" -- "{word}") )'
    flag = "-f" if opt.path == "file" else "-d"
    return f'COMPREPLY=( $(compgen {flag} -- "{word}") )'


def _bash_option_block(options: tuple[_Option, ...], indent: str) -> list[str]:
    valued = [opt for opt in options if opt.takes_value]
    words = " ".join(filter(None, (_option_words(options), _HELP_WORDS)))
    lines: list[str] = []
    if valued:
        lines.append('case "$prev" in')
        for opt in valued:
            lines += [
                f"  {'|'.join(opt.spellings)})",
                f"    {_bash_value_reply(opt, '$cur')}",
                "    return 0",
                "    ;;",
            ]
        lines.append("esac")
        for opt in valued:
            prefix = f"--{opt.name}="
            lines += [
                "",
                f'if [[ "$cur" == {prefix}* ]]; then',
                f'  local value="${{cur#{prefix}}}"',
                f"  {_bash_value_reply(opt, '$value')}",
                f'  COMPREPLY=( "${{COMPREPLY[@]/#/{prefix}}}" )',
                "  return 0",
                "fi",
            ]
        lines.append("")
    lines.append(f'COMPREPLY=( $(compgen -W "{words}" -- "$cur") )')
    return [indent + line if line else "" for line in lines]


def _bash_script() -> str:
    command_names = " ".join(cmd.name for cmd in _COMMANDS)
    top_words = f"$commands {_option_words(_RUN_OPTIONS)} {_HELP_WORDS}"
    lines = [
        "_ags_completion() {",
        "  local cur prev",
        '  cur="${COMP_WORDS[COMP_CWORD]}"',
        '  prev=""',
        "  if (( COMP_CWORD > 0 )); then",
        '    prev="${COMP_WORDS[COMP_CWORD-1]}"',
        "  fi",
        "",
        f'  local commands="{command_names}"',
    ]
    lines += [f'  local {var}="{" ".join(values)}"' for var, values in _CHOICES.items()]
    lines += [
        "",
        "  local word",
        '  for word in "${COMP_WORDS[@]}"; do',
        '    [[ "$word" == "--" ]] && return 0',
        "  done",
        "",
        "  if (( COMP_CWORD == 1 )); then",
        f'    COMPREPLY=( $(compgen -W "{top_words}" -- "$cur") )',
        "    return 0",
        "  fi",
        "",
        '  case "${COMP_WORDS[1]}" in',
    ]
    for cmd in _COMMANDS:
        lines.append(f"    {cmd.name})")
        lines += _bash_option_block(cmd.options, "      ")
        lines += ["      return 0", "      ;;"]
    lines += ["  esac", ""]
    lines += _bash_option_block(_RUN_OPTIONS, "  ")
    lines += ["}", "", "complete -F _ags_completion ags"]
    return "\n".join(lines) + "\n"


# --- zsh ---------------------------------------------------------------------


def _zsh_specs(opt: _Option) -> list[str]:
    if opt.choices is not None:
        action = f":{opt.name}:({' '.join(_CHOICES[opt.choices])})"
    elif opt.path == "file":
        action = f":{opt.name}:_files"
    elif opt.path == "dir":
        action = f":{opt.name}:_files -/"
    else:
        action = ""
    long_name = f"--{opt.name}"
    if opt.short is None:
        return [f"'{long_name}[{opt.help}]{action}'"]
    short_name = f"-{opt.short}"
    return [
        f"'({short_name}){long_name}[{opt.help}]{action}'",
        f"'({long_name}){short_name}[{opt.help}]{action}'",
    ]


def _zsh_arguments(options: tuple[_Option, ...], indent: str, flags: str = "") -> list[str]:
    specs = [spec for opt in options for spec in _zsh_specs(opt)]
    specs.append("'(-h --help)'{-h,--help}'[Show help]'")
    head = f"{indent}_arguments{' ' + flags if flags else ''} \\"
    body = [f"{indent}  {spec} \\" for spec in specs]
    body[-1] = body[-1][: -len(" \\")]
    return [head, *body]


def _zsh_script() -> str:
    command_names = " ".join(cmd.name for cmd in _COMMANDS)
    run_words = f"{_option_words(_RUN_OPTIONS)} {_HELP_WORDS}"
    lines = [
        "#compdef ags",
        "",
        "if (( CURRENT == 2 )); then",
        "  _alternative \\",
        f"    'subcommand:subcommand:({command_names})' \\",
        f"    'run-flag:run flag:({run_words})'",
        "  return",
        "fi",
        "",
        'case "$words[2]" in',
    ]
    for cmd in _COMMANDS:
        lines.append(f"  {cmd.name})")
        lines += _zsh_arguments(cmd.options, "    ")
        lines += ["    return", "    ;;"]
    lines += ["esac", ""]
    lines += _zsh_arguments(_RUN_OPTIONS, "", "-S")
    return "\n".join(lines) + "\n"


# --- fish --------------------------------------------------------------------


def _fish_option(condition: str, opt: _Option) -> str:
    parts = [f'complete -c ags -n "{condition}"', f"-l {opt.name}"]
    if opt.short:
        parts.append(f"-s {opt.short}")
    if opt.takes_value:
        parts.append("-r")
    if opt.choices is not None:
        parts.append(f'-a "{" ".join(_CHOICES[opt.choices])}"')
    parts.append(f'-d "{opt.help}"')
    return " ".join(parts)


def _fish_help(condition: str) -> str:
    return f'complete -c ags -n "{condition}" -s h -l help -d "Show help"'


def _fish_script() -> str:
    top = "__fish_use_subcommand"
    lines = ["complete -c ags -f", "", "# Top-level: subcommands and run-mode flags."]
    lines += [f'complete -c ags -n "{top}" -a {cmd.name} -d "{cmd.help}"' for cmd in _COMMANDS]
    lines.append("")
    lines += [_fish_option(top, opt) for opt in _RUN_OPTIONS]
    lines.append(_fish_help(top))
    for cmd in _COMMANDS:
        condition = f"__fish_seen_subcommand_from {cmd.name}"
        lines += ["", f"# {cmd.name}"]
        lines += [_fish_option(condition, opt) for opt in cmd.options]
        lines.append(_fish_help(condition))
    return "\n".join(lines) + "\n"


_SCRIPTS = {
    Shell.BASH: _bash_script(),
    Shell.ZSH: _zsh_script(),
    Shell.FISH: _fish_script(),
}


def render(shell: Shell | str) -> str:
    """Return the completion script for ``shell``."""
    return _SCRIPTS[Shell(shell)]


def run(shell: Shell | str) -> None:
    """Write the completion script for ``shell`` to standard output."""
    sys.stdout.write(render(shell))
    sys.stdout.flush()