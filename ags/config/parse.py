"""Loading, merging and validating the TOML configuration file."""

from __future__ import annotations

import copy
import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ags.config.types import (
    DEFAULT_MINIMUM_RELEASE_AGE,
    DEFAULT_PI_SPEC,
    AuthProxyConfig,
    BrowserConfig,
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

_ADDITIVE_KEYS = frozenset({"mount", "agent_mount", "tool", "secret"})
_MISSING: Any = object()


# --- schema reading -------------------------------------------------------


class _SchemaError(Exception):
    """The TOML document does not match the expected shape."""


def _describe(value: Any) -> str:
    if isinstance(value, bool):
        return "a boolean"
    if isinstance(value, int):
        return "an integer"
    if isinstance(value, float):
        return "a float"
    if isinstance(value, str):
        return "a string"
    if isinstance(value, list):
        return "an array"
    if isinstance(value, dict):
        return "a table"
    return type(value).__name__


class _Reader:
    """Typed access to the fields of one TOML table."""

    def __init__(self, table: Any, where: str) -> None:
        if not isinstance(table, dict):
            raise _SchemaError(f"{where}: expected a table, found {_describe(table)}")
        self._table: Mapping[str, Any] = table
        self._where = where

    def _get(self, key: str, default: Any) -> Any:
        if key in self._table:
            return self._table[key]
        if default is _MISSING:
            raise _SchemaError(f"{self._where}: missing field `{key}`")
        return default

    def _wrong(self, key: str, expected: str, value: Any) -> _SchemaError:
        return _SchemaError(
            f"{self._where}.{key}: invalid type: {_describe(value)}, expected {expected}"
        )

    def text(self, key: str, default: Any = _MISSING) -> str:
        value = self._get(key, default)
        if not isinstance(value, str):
            raise self._wrong(key, "a string", value)
        return value

    def opt_text(self, key: str) -> str | None:
        return self.text(key) if key in self._table else None

    def flag(self, key: str, default: bool = False) -> bool:
        value = self._get(key, default)
        if not isinstance(value, bool):
            raise self._wrong(key, "a boolean", value)
        return value

    def uint(self, key: str, bits: int, default: int) -> int:
        value = self._get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._wrong(key, f"u{bits}", value)
        if not 0 <= value < 2**bits:
            raise _SchemaError(
                f"{self._where}.{key}: invalid value: integer `{value}`, expected u{bits}"
            )
        return value

    def texts(self, key: str) -> list[str]:
        value = self._get(key, [])
        if not isinstance(value, list):
            raise self._wrong(key, "a sequence of strings", value)
        for item in value:
            if not isinstance(item, str):
                raise self._wrong(key, "a sequence of strings", item)
        return list(value)

    def opt_mapping(self, key: str) -> dict[str, str] | None:
        if key not in self._table:
            return None
        value = self._table[key]
        if not isinstance(value, dict):
            raise self._wrong(key, "a table of strings", value)
        for item in value.values():
            if not isinstance(item, str):
                raise self._wrong(key, "a table of strings", item)
        return dict(sorted(value.items()))

    def sub(self, key: str, required: bool = False) -> _Reader:
        value = self._get(key, _MISSING if required else {})
        return _Reader(value, f"{key}" if self._where == "config" else f"{self._where}.{key}")

    def subs(self, key: str) -> list[_Reader]:
        value = self._get(key, [])
        if not isinstance(value, list):
            raise self._wrong(key, "an array of tables", value)
        prefix = key if self._where == "config" else f"{self._where}.{key}"
        return [_Reader(item, f"{prefix}[{idx}]") for idx, item in enumerate(value)]


@dataclass
class _RawMount:
    host: str
    container: str
    mode: str
    kind: str
    create: bool
    optional: bool
    when: str
    source: str

    @classmethod
    def read(cls, r: _Reader) -> _RawMount:
        return cls(
            host=r.text("host"),
            container=r.text("container"),
            mode=r.text("mode"),
            kind=r.text("kind", "dir"),
            create=r.flag("create"),
            optional=r.flag("optional"),
            when=r.text("when", "always"),
            source=r.text("source", "config"),
        )


@dataclass
class _RawAgentMount:
    host: str
    container: str
    kind: str

    @classmethod
    def read(cls, r: _Reader) -> _RawAgentMount:
        return cls(
            host=r.text("host"),
            container=r.text("container"),
            kind=r.text("kind", "dir"),
        )


@dataclass
class _RawSecret:
    env: str
    from_env: str | None
    secret_store: dict[str, str] | None
    provider: str | None
    var: str | None
    attributes: dict[str, str] | None

    @classmethod
    def read(cls, r: _Reader) -> _RawSecret:
        return cls(
            env=r.text("env"),
            from_env=r.opt_text("from_env"),
            secret_store=r.opt_mapping("secret_store"),
            provider=r.opt_text("provider"),
            var=r.opt_text("var"),
            attributes=r.opt_mapping("attributes"),
        )


@dataclass
class _RawTool:
    name: str
    path: str
    container_path: str
    mode: str
    when: str
    optional: bool
    directory: list[_RawMount] = field(default_factory=list)
    secret: list[_RawSecret] = field(default_factory=list)

    @classmethod
    def read(cls, r: _Reader) -> _RawTool:
        return cls(
            name=r.text("name"),
            path=r.text("path"),
            container_path=r.text("container_path"),
            mode=r.text("mode", "ro"),
            when=r.text("when", "always"),
            optional=r.flag("optional"),
            directory=[_RawMount.read(d) for d in r.subs("directory")],
            secret=[_RawSecret.read(s) for s in r.subs("secret")],
        )


@dataclass
class _RawBrowser:
    enabled: bool
    command: str
    profile_dir: str
    debug_port: int
    pi_skill_path: str
    command_args: list[str]

    @classmethod
    def read(cls, r: _Reader) -> _RawBrowser:
        return cls(
            enabled=r.flag("enabled"),
            command=r.text("command", ""),
            profile_dir=r.text("profile_dir", ""),
            debug_port=r.uint("debug_port", 16, 0),
            pi_skill_path=r.text("pi_skill_path", ""),
            command_args=r.texts("command_args"),
        )


@dataclass
class _RawSandbox:
    image: str
    containerfile: str
    cache_dir: str
    gitconfig_path: str
    auth_key: str
    sign_key: str
    bootstrap_files: list[str]
    container_boot_dirs: list[str]
    passthrough_env: list[str]

    @classmethod
    def read(cls, r: _Reader) -> _RawSandbox:
        return cls(
            image=r.text("image"),
            containerfile=r.text("containerfile"),
            cache_dir=r.text("cache_dir"),
            gitconfig_path=r.text("gitconfig_path"),
            auth_key=r.text("auth_key"),
            sign_key=r.text("sign_key"),
            bootstrap_files=r.texts("bootstrap_files"),
            container_boot_dirs=r.texts("container_boot_dirs"),
            passthrough_env=r.texts("passthrough_env"),
        )


@dataclass
class _RawConfig:
    sandbox: _RawSandbox
    mount: list[_RawMount]
    agent_mount: list[_RawAgentMount]
    tool: list[_RawTool]
    secret: list[_RawSecret]
    browser: _RawBrowser
    pi_spec: str
    minimum_release_age: int
    auto_allow_domains: list[str]
    psp_binary: str

    @classmethod
    def read(cls, value: Any) -> _RawConfig:
        r = _Reader(value, "config")
        update = r.sub("update")
        return cls(
            sandbox=_RawSandbox.read(r.sub("sandbox", required=True)),
            mount=[_RawMount.read(m) for m in r.subs("mount")],
            agent_mount=[_RawAgentMount.read(m) for m in r.subs("agent_mount")],
            tool=[_RawTool.read(t) for t in r.subs("tool")],
            secret=[_RawSecret.read(s) for s in r.subs("secret")],
            browser=_RawBrowser.read(r.sub("browser")),
            pi_spec=update.text("pi_spec", DEFAULT_PI_SPEC),
            minimum_release_age=update.uint(
                "minimum_release_age", 32, DEFAULT_MINIMUM_RELEASE_AGE
            ),
            auto_allow_domains=r.sub("auth_proxy").texts("auto_allow_domains"),
            psp_binary=r.sub("psp").text("binary", ""),
        )


# --- public entry points ---------------------------------------------------


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ConfigIOError(path, err) from err
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as err:
        raise ConfigTomlError(path, err) from err


def _parse_value(value: Any, config_path: Path) -> ValidatedConfig:
    try:
        raw = _RawConfig.read(value)
    except _SchemaError as err:
        raise ConfigTomlError(config_path, str(err)) from None
    return _validate(raw, config_path)


def parse_and_validate(path: Path | str) -> ValidatedConfig:
    """Read, parse and validate a config file from disk."""
    path = Path(path)
    return _parse_value(_read_toml(path), path)


def parse_and_validate_with_overlay(
    base_path: Path | str, overlay_path: Path | str | None
) -> ValidatedConfig:
    """Read a base config, merge an optional overlay over it, and validate.

    Overlay scalars and tables win; the top-level ``mount``, ``agent_mount``,
    ``tool`` and ``secret`` arrays are appended instead of replaced.
    """
    base_path = Path(base_path)
    merged = _read_toml(base_path)
    if overlay_path is not None:
        merged = merge_toml(merged, _read_toml(Path(overlay_path)))
    return _parse_value(merged, base_path)


def parse_toml_str(content: str, config_path: Path | str) -> ValidatedConfig:
    """Parse and validate config from a TOML string."""
    config_path = Path(config_path)
    try:
        value = tomllib.loads(content)
    except tomllib.TOMLDecodeError as err:
        raise ConfigTomlError(config_path, err) from err
    return _parse_value(value, config_path)


def merge_toml(base: Any, overlay: Any) -> Any:
    """Return ``overlay`` merged over ``base``; neither input is modified."""
    merged = copy.deepcopy(base)
    return _merge_into(merged, copy.deepcopy(overlay), ())


def _merge_into(base: Any, overlay: Any, path: tuple[str, ...]) -> Any:
    if not (isinstance(base, dict) and isinstance(overlay, dict)):
        return overlay
    for key, overlay_value in overlay.items():
        if not path and key in _ADDITIVE_KEYS:
            existing = base.get(key)
            if isinstance(existing, list) and isinstance(overlay_value, list):
                existing.extend(overlay_value)
            else:
                base[key] = overlay_value
        elif key in base:
            base[key] = _merge_into(base[key], overlay_value, (*path, key))
        else:
            base[key] = overlay_value
    return base


# --- validation -------------------------------------------------------------


def _validate(raw: _RawConfig, config_path: Path) -> ValidatedConfig:
    sandbox = _validate_sandbox(raw.sandbox)

    mounts = [_validate_mount(m, f"[[mount]] #{idx}") for idx, m in enumerate(raw.mount)]
    mounts.extend(
        _validate_agent_mount(m, f"[[agent_mount]] #{idx}")
        for idx, m in enumerate(raw.agent_mount)
    )

    secrets: list[ValidatedSecret] = []
    for idx, s in enumerate(raw.secret):
        secrets.extend(_validate_secret(s, f"[[secret]] #{idx}"))

    tools: list[ValidatedTool] = []
    for idx, t in enumerate(raw.tool):
        tool, extra_mounts, extra_secrets = _validate_tool(t, f"[[tool]] #{idx}")
        tools.append(tool)
        mounts.extend(extra_mounts)
        secrets.extend(extra_secrets)

    browser = _validate_browser(raw.browser)

    return ValidatedConfig(
        config_file=config_path,
        sandbox=sandbox,
        mounts=mounts,
        tools=tools,
        secrets=secrets,
        browser=browser,
        update=UpdateConfig(
            pi_spec=raw.pi_spec, minimum_release_age=raw.minimum_release_age
        ),
        auth_proxy=AuthProxyConfig(auto_allow_domains=raw.auto_allow_domains),
        psp=PspConfig(binary=raw.psp_binary),
    )


def _validate_sandbox(raw: _RawSandbox) -> ValidatedSandbox:
    return ValidatedSandbox(
        image=_require_non_empty(raw.image, "[sandbox].image"),
        containerfile=expand_path(raw.containerfile, "[sandbox].containerfile"),
        cache_dir=expand_path(raw.cache_dir, "[sandbox].cache_dir"),
        gitconfig_path=expand_path(raw.gitconfig_path, "[sandbox].gitconfig_path"),
        auth_key=expand_path(raw.auth_key, "[sandbox].auth_key"),
        sign_key=expand_path(raw.sign_key, "[sandbox].sign_key"),
        bootstrap_files=_validate_string_list(
            raw.bootstrap_files, "[sandbox].bootstrap_files"
        ),
        container_boot_dirs=_validate_string_list(
            raw.container_boot_dirs, "[sandbox].container_boot_dirs"
        ),
        passthrough_env=_validate_string_list(
            raw.passthrough_env, "[sandbox].passthrough_env"
        ),
    )


def _validate_mount(raw: _RawMount, ctx: str) -> ValidatedMount:
    return ValidatedMount(
        host=expand_path(raw.host, f"{ctx}.host"),
        container=_require_non_empty(raw.container, f"{ctx}.container"),
        mode=_parse_choice(MountMode, raw.mode, f"{ctx}.mode"),
        kind=_parse_choice(MountKind, raw.kind, f"{ctx}.kind"),
        when=_parse_choice(MountWhen, raw.when, f"{ctx}.when"),
        create=raw.create,
        optional=raw.optional,
        source=raw.source,
    )


def _validate_agent_mount(raw: _RawAgentMount, ctx: str) -> ValidatedMount:
    return ValidatedMount(
        host=expand_path(raw.host, f"{ctx}.host"),
        container=_require_non_empty(raw.container, f"{ctx}.container"),
        mode=MountMode.RW,
        kind=_parse_choice(MountKind, raw.kind, f"{ctx}.kind"),
        when=MountWhen.ALWAYS,
        create=False,
        optional=False,
        source="agent_mount",
    )


def _validate_secret(raw: _RawSecret, ctx: str) -> list[ValidatedSecret]:
    env = _require_non_empty(raw.env, f"{ctx}.env")
    out: list[ValidatedSecret] = []

    if raw.from_env is not None:
        from_env = _require_non_empty(raw.from_env, f"{ctx}.from_env")
        out.append(ValidatedSecret(env=env, source=EnvSource(from_env), origin=ctx))

    if raw.secret_store is not None:
        if not raw.secret_store:
            raise ConfigValidationError(
                f"{ctx}.secret_store must include at least one lookup attribute"
            )
        out.append(
            ValidatedSecret(
                env=env,
                source=SecretToolSource(dict(raw.secret_store)),
                origin=ctx,
            )
        )

    # Legacy provider form.
    if raw.provider is not None:
        provider = raw.provider.lower()
        if provider == "env":
            var = raw.var if raw.var is not None else env
            out.append(ValidatedSecret(env=env, source=EnvSource(var), origin=ctx))
        elif provider == "secret-tool":
            if raw.attributes is None:
                raise ConfigValidationError(
                    f"{ctx}.attributes required for secret-tool provider"
                )
            if not raw.attributes:
                raise ConfigValidationError(
                    f"{ctx}.attributes must include at least one lookup attribute"
                )
            out.append(
                ValidatedSecret(
                    env=env,
                    source=SecretToolSource(dict(raw.attributes)),
                    origin=ctx,
                )
            )
        else:
            raise ConfigValidationError(
                f"{ctx}.provider must be 'env' or 'secret-tool', got '{provider}'"
            )

    if not out:
        raise ConfigValidationError(
            f"{ctx} must define at least one source: from_env, secret_store, or provider"
        )
    return out


def _validate_tool(
    raw: _RawTool, ctx: str
) -> tuple[ValidatedTool, list[ValidatedMount], list[ValidatedSecret]]:
    name = _require_non_empty(raw.name, f"{ctx}.name")
    path = expand_path(raw.path, f"{ctx}.path")
    container_path = _require_non_empty(raw.container_path, f"{ctx}.container_path")
    mode = _parse_choice(MountMode, raw.mode, f"{ctx}.mode")
    when = _parse_choice(MountWhen, raw.when, f"{ctx}.when")

    tool = ValidatedTool(
        name=name,
        path=path,
        container_path=container_path,
        mode=mode,
        when=when,
        optional=raw.optional,
    )

    mounts = [
        ValidatedMount(
            host=path,
            container=container_path,
            mode=mode,
            kind=MountKind.FILE,
            when=when,
            create=False,
            optional=raw.optional,
            source=f"tool:{name}:binary",
        )
    ]
    for didx, directory in enumerate(raw.directory):
        mount = _validate_mount(directory, f"{ctx}.directory[{didx}]")
        mount.source = f"tool:{name}:directory"
        mounts.append(mount)

    secrets: list[ValidatedSecret] = []
    for sidx, secret in enumerate(raw.secret):
        for entry in _validate_secret(secret, f"{ctx}.secret[{sidx}]"):
            entry.tool = name
            secrets.append(entry)

    return tool, mounts, secrets


def _validate_browser(raw: _RawBrowser) -> BrowserConfig:
    if not raw.enabled:
        return BrowserConfig()

    command = _require_non_empty(raw.command, "[browser].command")
    if "/" in command or command.startswith("~"):
        command = str(expand_path(command, "[browser].command"))

    _require_non_empty(raw.profile_dir, "[browser].profile_dir")
    profile_dir = expand_path(raw.profile_dir, "[browser].profile_dir")

    if raw.debug_port == 0:
        raise ConfigValidationError(
            "[browser].debug_port must be set when browser is enabled"
        )

    return BrowserConfig(
        enabled=True,
        command=command,
        profile_dir=profile_dir,
        debug_port=raw.debug_port,
        pi_skill_path=raw.pi_skill_path,
        command_args=list(raw.command_args),
    )


# --- helpers -----------------------------------------------------------------


def _require_non_empty(value: str, ctx: str) -> str:
    if not value.strip():
        raise ConfigValidationError(f"{ctx} must be a non-empty string")
    return value


def _validate_string_list(values: list[str], ctx: str) -> list[str]:
    for idx, value in enumerate(values):
        _require_non_empty(value, f"{ctx}[{idx}]")
    return list(values)


def _parse_choice(enum_type: type, value: str, ctx: str) -> Any:
    try:
        return enum_type(value.lower())
    except ValueError:
        choices = " or ".join(f"'{member.value}'" for member in enum_type)
        raise ConfigValidationError(f"{ctx} must be {choices}") from None


def expand_path(raw: str, ctx: str) -> Path:
    """Expand ``~`` and environment variables, then make the path absolute."""
    expanded = expand_env_vars(_expand_tilde(raw))
    if not expanded:
        raise ConfigValidationError(
            f"{ctx}: failed to resolve path '{raw}': cannot make an empty path absolute"
        )
    path = Path(expanded)
    if path.is_absolute():
        return path
    try:
        return Path.cwd() / path
    except OSError as err:
        raise ConfigValidationError(
            f"{ctx}: failed to resolve path '{raw}': {err}"
        ) from err


def _expand_tilde(raw: str) -> str:
    if not raw.startswith("~"):
        return raw
    rest = raw[1:]
    if rest and not rest.startswith("/"):
        # ~user form is not supported and passes through unchanged.
        return raw
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as err:
        raise ConfigValidationError("cannot determine home directory") from err
    return f"{home}{rest}"


_VAR_PATTERN = re.compile(
    r"\$\{(?P<braced>[^}]*)\}"
    r"|(?P<unclosed>\$\{[^}]*\Z)"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


def _substitute(match: re.Match[str]) -> str:
    if match.group("unclosed") is not None:
        return match.group(0)
    name = match.group("braced")
    if name is None:
        name = match.group("bare")
    value = os.environ.get(name) if name else None
    return match.group(0) if value is None else value


def expand_env_vars(value: str) -> str:
    """Expand ``$VAR`` and ``${VAR}``; undefined variables are left as written."""
    if "$" not in value:
        return value
    return _VAR_PATTERN.sub(_substitute, value)