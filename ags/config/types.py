"""Validated configuration types and configuration errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

DEFAULT_PI_SPEC = "@mariozechner/pi-coding-agent"
DEFAULT_MINIMUM_RELEASE_AGE = 1440


class ConfigError(Exception):
    """Base class for errors raised while loading or validating config."""


class ConfigIOError(ConfigError):
    """The config file could not be read."""

    def __init__(self, path: Path | str, source: BaseException) -> None:
        self.path = Path(path)
        self.source = source
        super().__init__(f"failed to read {self.path}: {source}")
        self.__cause__ = source


class ConfigTomlError(ConfigError):
    """The config file is not valid TOML or does not match the schema."""

    def __init__(self, path: Path | str, source: BaseException | str) -> None:
        self.path = Path(path)
        self.source = source
        super().__init__(f"invalid TOML in {self.path}: {source}")
        if isinstance(source, BaseException):
            self.__cause__ = source


class ConfigValidationError(ConfigError):
    """A config value failed validation."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MountMode(StrEnum):
    RO = "ro"
    RW = "rw"


class MountKind(StrEnum):
    DIR = "dir"
    FILE = "file"


class MountWhen(StrEnum):
    ALWAYS = "always"
    BROWSER = "browser"


@dataclass(frozen=True)
class EnvSource:
    """Secret read from a host environment variable."""

    from_env: str


@dataclass
class SecretToolSource:
    """Secret looked up in the keyring via secret-tool attributes."""

    attributes: dict[str, str] = field(default_factory=dict)


SecretSource = EnvSource | SecretToolSource


@dataclass
class ValidatedSandbox:
    image: str
    containerfile: Path
    cache_dir: Path
    gitconfig_path: Path
    auth_key: Path
    sign_key: Path
    bootstrap_files: list[str] = field(default_factory=list)
    container_boot_dirs: list[str] = field(default_factory=list)
    passthrough_env: list[str] = field(default_factory=list)


@dataclass
class ValidatedMount:
    host: Path
    container: str
    mode: MountMode
    kind: MountKind
    when: MountWhen
    create: bool = False
    optional: bool = False
    source: str = "config"


@dataclass
class ValidatedTool:
    name: str
    path: Path
    container_path: str
    mode: MountMode
    when: MountWhen
    optional: bool = False


@dataclass
class ValidatedSecret:
    env: str
    source: SecretSource
    origin: str
    tool: str | None = None


@dataclass
class BrowserConfig:
    enabled: bool = False
    command: str = ""
    profile_dir: Path = field(default_factory=Path)
    debug_port: int = 0
    pi_skill_path: str = ""
    command_args: list[str] = field(default_factory=list)


@dataclass
class UpdateConfig:
    pi_spec: str = DEFAULT_PI_SPEC
    minimum_release_age: int = DEFAULT_MINIMUM_RELEASE_AGE


@dataclass
class AuthProxyConfig:
    auto_allow_domains: list[str] = field(default_factory=list)


@dataclass
class PspConfig:
    """Optional override path to the psp binary; empty means PATH lookup."""

    binary: str = ""


@dataclass
class ValidatedConfig:
    """Validated, path-resolved configuration ready for launching."""

    config_file: Path
    sandbox: ValidatedSandbox
    mounts: list[ValidatedMount] = field(default_factory=list)
    tools: list[ValidatedTool] = field(default_factory=list)
    secrets: list[ValidatedSecret] = field(default_factory=list)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    update: UpdateConfig = field(default_factory=UpdateConfig)
    auth_proxy: AuthProxyConfig = field(default_factory=AuthProxyConfig)
    psp: PspConfig = field(default_factory=PspConfig)

    def mount_host_for_container(self, container_path: str) -> Path | None:
        """Return the host path of the first mount at exactly ``container_path``."""
        return next(
            (m.host for m in self.mounts if m.container == container_path), None
        )