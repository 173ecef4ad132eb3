import pytest

from ags.completions import Shell, render, run


def test_bash_completion_contains_core_flags():
    script = render(Shell.BASH)
    for needle in (
        "--agent",
        "--browser",
        "--tmux",
        "create-aliases",
        "completions",
        "--add-agent-mounts",
        "--add-dir",
        "-d",
    ):
        assert needle in script


def test_zsh_completion_contains_compdef():
    script = render(Shell.ZSH)
    assert script.startswith("#compdef ags")
    assert "update-agents" in script


def test_fish_completion_contains_subcommands():
    script = render(Shell.FISH)
    assert "complete -c ags" in script
    assert "-a completions" in script


def test_zsh_keeps_line_continuations():
    script = render(Shell.ZSH)
    assert "_alternative \\\n" in script


def test_bash_script_registers_completion_function():
    assert render(Shell.BASH).endswith("complete -F _ags_completion ags\n")


def test_render_accepts_shell_name():
    assert render("fish") == render(Shell.FISH)


def test_render_rejects_unknown_shell():
    with pytest.raises(ValueError):
        render("tcsh")


def test_run_writes_script_to_stdout(capsys):
    run(Shell.ZSH)
    out = capsys.readouterr().out
    assert out == render(Shell.ZSH)