from pathlib import Path

import pytest

from ags.config.types import (
    AuthProxyConfig,
    BrowserConfig,
    ConfigError,
    ConfigIOError,
    ConfigTomlError,
    ConfigValidationError,
    EnvSource,
    MountKind,
    MountMode,
    MountWhen,
    PspConfig,
    SecretToolSource,
    UpdateConfig,
    ValidatedConfig,
    ValidatedMount,
    ValidatedSandbox,
    ValidatedSecret,
    ValidatedTool,
)


def _sandbox() -> ValidatedSandbox:
    return ValidatedSandbox(
        image="localhost/agent-sandbox:latest",
        containerfile=Path("/cfg/Containerfile"),
        cache_dir=Path("/cache"),
        gitconfig_path=Path("/cache/gitconfig"),
        auth_key=Path("/keys/auth"),
        sign_key=Path("/keys/sign"),
    )


def _mount(host: str, container: str) -> ValidatedMount:
    return ValidatedMount(
        host=Path(host),
        container=container,
        mode=MountMode.RW,
        kind=MountKind.DIR,
        when=MountWhen.ALWAYS,
    )


def test_mount_host_for_container_finds_exact_match():
    config = ValidatedConfig(
        config_file=Path("/cfg/config.toml"),
        sandbox=_sandbox(),
        mounts=[_mount("/h/claude", "/home/dev/.claude"), _mount("/h/pi", "/home/dev/.pi")],
    )
    assert config.mount_host_for_container("/home/dev/.pi") == Path("/h/pi")


def test_mount_host_for_container_returns_first_match():
    config = ValidatedConfig(
        config_file=Path("/cfg/config.toml"),
        sandbox=_sandbox(),
        mounts=[_mount("/first", "/home/dev/.pi"), _mount("/second", "/home/dev/.pi")],
    )
    assert config.mount_host_for_container("/home/dev/.pi") == Path("/first")


def test_mount_host_for_container_requires_exact_path():
    config = ValidatedConfig(
        config_file=Path("/cfg/config.toml"),
        sandbox=_sandbox(),
        mounts=[_mount("/h/pi", "/home/dev/.pi")],
    )
    assert config.mount_host_for_container("/home/dev/.pi/agent") is None
    assert config.mount_host_for_container("/home/dev") is None


@pytest.mark.parametrize(
    ("enum_cls", "text", "member"),
    [
        (MountMode, "ro", MountMode.RO),
        (MountMode, "rw", MountMode.RW),
        (MountKind, "dir", MountKind.DIR),
        (MountKind, "file", MountKind.FILE),
        (MountWhen, "always", MountWhen.ALWAYS),
        (MountWhen, "browser", MountWhen.BROWSER),
    ],
)
def test_enum_display_values(enum_cls, text, member):
    parsed = enum_cls(text)
    assert parsed is member
    assert str(parsed) == text


def test_enums_round_trip_from_value():
    for enum_cls in (MountMode, MountKind, MountWhen):
        for member in enum_cls:
            assert enum_cls(str(member)) is member


def test_browser_config_defaults_disabled():
    browser = BrowserConfig()
    assert browser.enabled is False
    assert browser.command == ""
    assert browser.debug_port == 0
    assert browser.command_args == []


def test_update_config_defaults():
    update = UpdateConfig()
    assert update.pi_spec == "@mariozechner/pi-coding-agent"
    assert update.minimum_release_age == 1440


def test_config_defaults_for_optional_sections():
    config = ValidatedConfig(config_file=Path("/c.toml"), sandbox=_sandbox())
    assert config.mounts == []
    assert config.auth_proxy == AuthProxyConfig()
    assert config.psp.binary == ""
    assert config.update == UpdateConfig()


def test_default_lists_are_not_shared():
    a = AuthProxyConfig()
    b = AuthProxyConfig()
    a.auto_allow_domains.append("example.com")
    assert b.auto_allow_domains == []


def test_secret_sources_compare_by_value():
    assert EnvSource("TOKEN_SRC") == EnvSource("TOKEN_SRC")
    assert SecretToolSource({"service": "x"}) == SecretToolSource({"service": "x"})
    assert EnvSource("A") != SecretToolSource({"A": "A"})


def test_validated_secret_defaults_tool_none():
    origin = "[[secret]] #0"
    entry = ValidatedSecret(env="API", source=EnvSource("API"), origin=origin)
    assert entry.tool is None


def test_validated_tool_holds_values():
    tool = ValidatedTool(
        name="gh",
        path=Path("/usr/bin/gh"),
        container_path="/usr/local/bin/gh",
        mode=MountMode.RO,
        when=MountWhen.ALWAYS,
    )
    assert tool.optional is False
    assert tool.mode is MountMode.RO


def test_io_error_message_and_cause():
    cause = FileNotFoundError("no such file")
    err = ConfigIOError(Path("/cfg/config.toml"), cause)
    assert str(err).startswith("failed to read /cfg/config.toml: ")
    assert err.__cause__ is cause
    assert isinstance(err, ConfigError)


def test_toml_error_message():
    err = ConfigTomlError("/cfg/config.toml", "expected a value")
    assert str(err) == "invalid TOML in /cfg/config.toml: expected a value"
    assert err.path == Path("/cfg/config.toml")


def test_validation_error_message_is_plain():
    err = ConfigValidationError("[sandbox].image must be a non-empty string")
    assert str(err) == "[sandbox].image must be a non-empty string"
    with pytest.raises(ConfigError):
        raise err


def test_psp_config_binary_override():
    assert PspConfig(binary="/opt/psp").binary == "/opt/psp"