"""Rebuild the sandbox image with the latest bundled br/bv/dcg releases."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ags.config.types import ValidatedConfig

BR_REPO = "Dicklesworthstone/beads_rust"
BV_REPO = "Dicklesworthstone/beads_viewer"
DCG_REPO = "Dicklesworthstone/destructive_command_guard"

_RELEASES_API = "https://api.github.com/repos/{repo}/releases/latest"


class UpdateError(Exception):
    """Raised when the sandbox image cannot be rebuilt."""

    @classmethod
    def missing_containerfile(cls, path: str) -> UpdateError:
        return cls(f"missing Containerfile: {path}")

    @classmethod
    def release_resolve_failed(cls, msg: str) -> UpdateError:
        return cls(
            f"failed to resolve latest bundled tool releases: {msg} "
            "(check network/GitHub access)"
        )

    @classmethod
    def release_parse_failed(cls, msg: str) -> UpdateError:
        return cls(f"failed to parse release metadata: {msg}")

    @classmethod
    def build_failed(cls, msg: str) -> UpdateError:
        return cls(f"podman build failed: {msg}")


@dataclass
class UpdateOptions:
    pull: bool = True


def _describe_status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def run(config: ValidatedConfig, opts: UpdateOptions | None = None) -> None:
    """Rebuild the sandbox image, refreshing the bundled release binaries."""
    opts = opts or UpdateOptions()
    image = config.sandbox.image
    containerfile = Path(config.sandbox.containerfile)

    if not containerfile.exists():
        raise UpdateError.missing_containerfile(str(containerfile))

    br_version = resolve_latest_tag(BR_REPO)
    bv_version = resolve_latest_tag(BV_REPO)
    dcg_version = resolve_latest_tag(DCG_REPO)

    args = build_podman_build_args(
        image,
        containerfile,
        containerfile.parent,
        br_version,
        bv_version,
        dcg_version,
        opts.pull,
    )

    print(f"Rebuilding {image}")
    print(f"  br release: {br_version}")
    print(f"  bv release: {bv_version}")
    print(f"  dcg release: {dcg_version}")

    try:
        proc = subprocess.run(["podman", *args], check=False)
    except OSError as err:
        raise UpdateError.build_failed(str(err)) from err
    if proc.returncode != 0:
        raise UpdateError.build_failed(f"exited with {_describe_status(proc.returncode)}")

    print("\nDone. Image rebuilt with br/bv/dcg refreshed.")
    print("Verify inside sandbox with: br --version && bv --version && dcg --version")
    print("Run 'ags update-agents' to install/update agent CLIs in volumes.")


def build_podman_build_args(
    image: str,
    containerfile: Path | str,
    context_dir: Path | str,
    br_version: str,
    bv_version: str,
    dcg_version: str,
    pull: bool,
) -> list[str]:
    """Return the ``podman`` arguments that rebuild the image."""
    args = [
        "build",
        "-t",
        image,
        "-f",
        str(containerfile),
        "--build-arg",
        f"BR_VERSION={br_version}",
        "--build-arg",
        f"BV_VERSION={bv_version}",
        "--build-arg",
        f"DCG_VERSION={dcg_version}",
    ]
    if pull:
        args.append("--pull")
    args.append(str(context_dir))
    return args


def _extract_tag(body: str) -> str:
    """Return the release tag from a JSON body; raise ValueError describing the problem."""
    try:
        release = json.loads(body)
    except json.JSONDecodeError as err:
        raise ValueError(str(err)) from None
    if not isinstance(release, dict):
        raise ValueError("invalid type: expected struct LatestRelease")
    if "tag_name" not in release:
        raise ValueError("missing field `tag_name`")
    tag = release["tag_name"]
    if not isinstance(tag, str):
        raise ValueError("invalid type for tag_name: expected a string")
    tag = tag.strip()
    if not tag or tag == "null":
        raise ValueError("missing tag_name in GitHub response")
    return tag


def parse_latest_tag(body: str) -> str:
    """Extract ``tag_name`` from a latest-release JSON response."""
    try:
        return _extract_tag(body)
    except ValueError as err:
        raise UpdateError.release_parse_failed(str(err)) from None


def resolve_latest_tag(repo: str) -> str:
    """Ask the releases API (via curl) for the latest tag of ``repo``."""
    url = _RELEASES_API.format(repo=repo)
    try:
        proc = subprocess.run(
            [
                "curl",
                "-fsSL",
                "-H",
                "Accept: application/vnd.github+json",
                "-H",
                "User-Agent: ags",
                url,
            ],
            capture_output=True,
            check=False,
        )
    except OSError as err:
        raise UpdateError.release_resolve_failed(
            f"{repo}: could not run curl: {err}"
        ) from err

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        suffix = f" ({stderr})" if stderr else ""
        raise UpdateError.release_resolve_failed(
            f"{repo}: curl exited with {_describe_status(proc.returncode)}{suffix}"
        )

    try:
        body = proc.stdout.decode("utf-8")
    except UnicodeDecodeError as err:
        raise UpdateError.release_parse_failed(
            f"{repo}: non-UTF8 response: {err}"
        ) from err

    try:
        return _extract_tag(body)
    except ValueError as err:
        raise UpdateError.release_parse_failed(f"{repo}: {err}") from None