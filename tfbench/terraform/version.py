"""
Terraform version detection and capability table.

`terraform version -json` is used when available; older releases only
print a banner such as::

    Terraform v0.12.5
    + provider.aws v2.3.0

which is parsed with two regular expressions. Either way the result
carries a version usable for capability comparisons.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from packaging.version import InvalidVersion, Version

from ..core.exceptions import ExecutionError
from ..core.runner import CommandRunner

logger = logging.getLogger("tfbench.terraform.version")

SIMPLE_VERSION_RE = r"v?(?P<version>[0-9]+(?:\.[0-9]+)*(?:-[A-Za-z0-9\.]+)?)"

VERSION_OUTPUT_RE = re.compile(r"^Terraform " + SIMPLE_VERSION_RE)
PROVIDER_VERSION_OUTPUT_RE = re.compile(r"\n\+ provider[\. ](?P<name>\S+) " + SIMPLE_VERSION_RE)


class VersionParseError(ValueError):
    """Raised when version output cannot be understood."""


def parse_version(text: str) -> Version:
    """Parse a terraform-style version ("v0.15.4", "1.1.0-alpha20210811")."""
    try:
        return Version(text.strip())
    except InvalidVersion as e:
        raise VersionParseError(f"unable to parse version {text!r}") from e


@dataclass
class TerraformVersion:
    """Version of terraform and of the providers selected in the workspace."""
    terraform_version: str
    provider_selections: dict[str, str] = field(default_factory=dict)

    @property
    def parsed(self) -> Version:
        return parse_version(self.terraform_version)

    @classmethod
    def from_json(cls, data: dict) -> "TerraformVersion":
        version = data.get("terraform_version")
        if not isinstance(version, str) or not version:
            raise VersionParseError("missing terraform_version field")
        selections = data.get("provider_selections") or {}
        return cls(
            terraform_version=version,
            provider_selections={str(k): str(v) for k, v in selections.items()},
        )

    def to_dict(self) -> dict:
        return {
            "terraform_version": self.terraform_version,
            "provider_selections": dict(self.provider_selections),
        }


def parse_old_version_output(stdout: str) -> TerraformVersion:
    """Parse the free-text banner printed by terraform releases without -json.

    Raises:
        VersionParseError: banner or one of its versions is not recognized
    """
    stdout = stdout.strip()

    match = VERSION_OUTPUT_RE.match(stdout)
    if match is None:
        raise VersionParseError(f"unexpected version output: {stdout!r}")
    tool_version = match.group("version")
    parse_version(tool_version)

    providers: dict[str, str] = {}
    for provider_match in PROVIDER_VERSION_OUTPUT_RE.finditer(stdout):
        provider_version = provider_match.group("version")
        parse_version(provider_version)
        providers[provider_match.group("name")] = provider_version

    return TerraformVersion(terraform_version=tool_version, provider_selections=providers)


def parse_version_output(output: str) -> TerraformVersion:
    """Parse `terraform version -json` output, falling back to the banner format."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        # Releases before 0.13 ignore -json and print the banner
        return parse_old_version_output(output)
    if not isinstance(data, dict):
        raise VersionParseError(f"unexpected version output: {output!r}")
    return TerraformVersion.from_json(data)


def detect_version(
    runner: CommandRunner,
    cwd: Optional[Union[str, Path]] = None,
) -> TerraformVersion:
    """Ask terraform for its version.

    Raises:
        ExecutionError: terraform could not be run at all
        VersionParseError: output not understood
    """
    try:
        out = runner.run("version", "-json", cwd=cwd, merge_stderr=False)
    except ExecutionError as e:
        logger.debug(f"`terraform version -json` failed, retrying without -json: {e}")
        out = runner.run("version", cwd=cwd)
        return parse_old_version_output(out.decode(errors="replace"))
    return parse_version_output(out.decode(errors="replace"))


@dataclass(frozen=True)
class Capability:
    """A behavior gated on a minimum terraform version."""
    name: str
    minimum: Version
    allowed_when_unknown: bool


EVENT_LOG = "event_log"
PROVIDER_REWRITE = "provider_rewrite"

CAPABILITY_TABLE: tuple[Capability, ...] = (
    # Structured refresh_start/refresh_complete events in `plan -refresh-only -json`
    Capability(EVENT_LOG, Version("0.15.4"), allowed_when_unknown=True),
    # Provider attributes of sensitive variables are redacted by console
    # from 0.15 on, so they are replaced with evaluated literals
    Capability(PROVIDER_REWRITE, Version("0.15"), allowed_when_unknown=False),
)


@dataclass(frozen=True)
class Capabilities:
    """Capabilities of the detected terraform, evaluated once per run."""
    version: Optional[str]
    enabled: frozenset

    def supports(self, name: str) -> bool:
        return name in self.enabled

    @property
    def event_log(self) -> bool:
        return self.supports(EVENT_LOG)

    @property
    def provider_rewrite(self) -> bool:
        return self.supports(PROVIDER_REWRITE)

    @staticmethod
    def minimum(name: str) -> Version:
        for capability in CAPABILITY_TABLE:
            if capability.name == name:
                return capability.minimum
        raise KeyError(name)

    @classmethod
    def from_version(cls, version: Optional[TerraformVersion]) -> "Capabilities":
        parsed: Optional[Version] = None
        if version is not None:
            try:
                parsed = version.parsed
            except VersionParseError:
                logger.warning(
                    f"Could not parse terraform version {version.terraform_version!r}, "
                    "assuming defaults"
                )

        enabled = set()
        for capability in CAPABILITY_TABLE:
            if parsed is None:
                if capability.allowed_when_unknown:
                    enabled.add(capability.name)
            elif parsed >= capability.minimum:
                enabled.add(capability.name)

        return cls(
            version=version.terraform_version if version is not None else None,
            enabled=frozenset(enabled),
        )
