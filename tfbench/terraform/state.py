"""
Managed-resource inventory from `terraform state pull`.

Only managed resources are benchmarked. Data sources (mode "data") are
read-only lookups that are not refreshed like managed resources, so they
are excluded from the inventory and from filtered per-type state files.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from ..core.exceptions import ExecutionError, StateError
from ..core.runner import CommandRunner

logger = logging.getLogger("tfbench.terraform.state")

MANAGED_MODE = "managed"


@dataclass
class ResourceTypeGroup:
    """All managed instances of one resource type, in state order."""
    type: str
    addresses: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.addresses)


def instance_address(record: dict, instance: dict) -> str:
    """Render the Terraform address of one resource instance.

    Examples:
        random_id.id[3]
        module.net.aws_subnet.private["a"]
    """
    parts = []
    module = record.get("module")
    if module:
        parts.append(module)
    if record.get("mode") == "data":
        parts.append("data")
    parts.append(f"{record.get('type')}.{record.get('name')}")
    address = ".".join(parts)

    key = instance.get("index_key")
    if isinstance(key, int) and not isinstance(key, bool):
        address += f"[{key}]"
    elif isinstance(key, str):
        address += f"[{json.dumps(key)}]"
    return address


def _load_document(raw: bytes) -> dict[str, Any]:
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StateError(f"could not unmarshal terraform state: {e}") from e
    if not isinstance(document, dict):
        raise StateError("state document is not a JSON object")
    resources = document.get("resources", [])
    if not isinstance(resources, list):
        raise StateError("state document field 'resources' is not a list")
    return document


def group_resources(document: dict[str, Any]) -> list[ResourceTypeGroup]:
    """Group managed resource instances by type, in first-appearance order."""
    groups: dict[str, ResourceTypeGroup] = {}
    for record in document.get("resources", []):
        if not isinstance(record, dict):
            continue
        if record.get("mode", MANAGED_MODE) != MANAGED_MODE:
            continue
        resource_type = record.get("type")
        if not resource_type:
            continue
        group = groups.setdefault(resource_type, ResourceTypeGroup(type=resource_type))
        for instance in record.get("instances") or []:
            group.addresses.append(instance_address(record, instance or {}))
    return list(groups.values())


def filter_state(raw: bytes, resource_type: str) -> bytes:
    """Return a copy of the state holding only managed records of one type.

    Every other top-level field (version, serial, lineage, outputs...) is
    kept untouched so terraform accepts the file as-is.
    """
    document = _load_document(raw)
    document["resources"] = [
        record for record in document.get("resources", [])
        if isinstance(record, dict)
        and record.get("type") == resource_type
        and record.get("mode", MANAGED_MODE) == MANAGED_MODE
    ]
    return json.dumps(document, indent=2).encode()


class StateAccessor:
    """Reads the current inventory of a workspace."""

    def __init__(self, runner: CommandRunner, workspace: Optional[Union[str, Path]] = None):
        self.runner = runner
        self.workspace = workspace

    def fetch_state(self) -> tuple[list[ResourceTypeGroup], bytes]:
        """Pull the state and group its managed instances by type.

        Returns:
            (groups, raw state bytes)

        Raises:
            StateError: state cannot be pulled or parsed
        """
        try:
            raw = self.runner.run("state", "pull", cwd=self.workspace, merge_stderr=False)
        except ExecutionError as e:
            raise StateError(f"`terraform state pull` failed: {e}", output=e.output) from e

        document = _load_document(raw)
        groups = group_resources(document)
        total = sum(g.count for g in groups)
        logger.info(f"Found {total} managed resource instances of {len(groups)} types")
        return groups, raw
