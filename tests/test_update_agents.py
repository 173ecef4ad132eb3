import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from ags.config.types import UpdateConfig, ValidatedConfig, ValidatedSandbox
from ags.update_agents import (
    UpdateAgentsError,
    UpdateAgentsOptions,
    build_install_script,
    run,
)

PI_SPEC = "@mariozechner/pi-coding-agent"
IMAGE = "localhost/agent-sandbox:latest"


def _config(tmp_path: Path, cache_dir: Path | None = None) -> ValidatedConfig:
    return ValidatedConfig(
        config_file=tmp_path / "config.toml",
        sandbox=ValidatedSandbox(
            image=IMAGE,
            containerfile=tmp_path / "Containerfile",
            cache_dir=cache_dir or tmp_path / "cache",
            gitconfig_path=tmp_path / "gitconfig",
            auth_key=tmp_path / "auth",
            sign_key=tmp_path / "sign",
        ),
        update=UpdateConfig(),
    )


def test_claude_update_still_uses_persistent_install_home():
    script = build_install_script(PI_SPEC, 1440)
    assert 'HOME="$CLAUDE_HOME" PATH="$CLAUDE_HOME/.local/bin:$PATH" "$CLAUDE_BIN" update' in script


def test_claude_wrapper_does_not_override_runtime_home():
    script = build_install_script(PI_SPEC, 1440)
    assert 'exec /opt/claude-home/.local/bin/claude "$@"' in script
    assert "export PATH=/opt/claude-home/.local/bin:$PATH" in script
    assert "export HOME=/opt/claude-home" not in script


def test_script_embeds_spec_and_release_age():
    script = build_install_script("my-pi@1.2.3", 60)
    assert "'60' > \"$HOME/.config/pnpm/rc\"" in script
    assert "    my-pi@1.2.3 @openai/codex @google/gemini-cli opencode-ai || \\" in script
    assert "minimum-release-age=%s\\nignore-scripts=true\\n" in script


def test_run_invokes_podman_with_volumes(tmp_path, capsys):
    config = _config(tmp_path)
    with patch(
        "ags.update_agents.subprocess.run",
        return_value=subprocess.CompletedProcess(args=[], returncode=0),
    ) as run_mock:
        run(config, UpdateAgentsOptions(pi_spec="custom-pi"))
    cmd = run_mock.call_args.args[0]
    cache = config.sandbox.cache_dir
    assert (cache / "pnpm-home").is_dir()
    assert (cache / "claude-install").is_dir()
    assert f"{cache / 'pnpm-home'}:/usr/local/pnpm:rw,z" in cmd
    assert f"{cache / 'claude-install'}:/opt/claude-home:rw,z" in cmd
    assert cmd[:2] == ["podman", "run"]
    assert IMAGE in cmd
    assert cmd[-1] == build_install_script("custom-pi", 1440)
    assert "PI spec: custom-pi" in capsys.readouterr().out


def test_run_reports_install_failure(tmp_path):
    with patch(
        "ags.update_agents.subprocess.run",
        return_value=subprocess.CompletedProcess(args=[], returncode=3),
    ):
        with pytest.raises(UpdateAgentsError) as exc:
            run(_config(tmp_path), UpdateAgentsOptions())
    assert str(exc.value).startswith("agent install failed: exited with")


def test_run_fails_when_host_dir_cannot_be_created(tmp_path):
    blocker = tmp_path / "cache-file"
    blocker.write_text("not a directory")
    with pytest.raises(UpdateAgentsError) as exc:
        run(_config(tmp_path, cache_dir=blocker), UpdateAgentsOptions())
    assert str(exc.value).startswith("failed to create host directory:")
    assert str(blocker / "pnpm-home") in str(exc.value)