"""
Meridian - Declared / Actual State Loading
==========================================

Turns Terraform state files and observed-state snapshots into StateEntry
lists, and upserts them into the resources table.

Usage:
    entries = load_terraform_state(Path("terraform.tfstate").read_text())
    record_declared_state(session, env, entries)

    entries = load_snapshot(json.loads(Path("observed.json").read_text()))
    record_actual_state(session, env, entries)
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from ..core.db import utcnow
from ..core.models import Environment, Resource
from ..resilience.error_handler import InvalidInputError

logger = logging.getLogger(__name__)

_INDEX_SUFFIX = re.compile(r"\[[^\]]*\]$")
_PROVIDER_NAME = re.compile(r'provider\["?(?:[^"\]]*/)?([^"\]/]+)"?\]')


@dataclass
class StateEntry:
    """One resource as seen by an IaC state file or an observer."""

    address: str
    resource_type: str
    attributes: dict[str, Any] = field(default_factory=dict)
    name: str | None = None
    provider: str | None = None
    region: str | None = None


def resource_type_from_address(address: str) -> str:
    """aws_instance.web[0] -> aws_instance; module.net.aws_vpc.main -> aws_vpc."""
    parts = _INDEX_SUFFIX.sub("", address).split(".")
    return parts[-2] if len(parts) >= 2 else parts[0]


def _parse(doc: Any) -> Any:
    if isinstance(doc, (bytes, str)):
        try:
            return json.loads(doc)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"State document is not valid JSON: {e}") from e
    return doc


def _provider_name(provider: str | None) -> str | None:
    if not provider:
        return None
    match = _PROVIDER_NAME.search(provider)
    return match.group(1) if match else provider


def load_terraform_state(doc: Any) -> list[StateEntry]:
    """
    Read managed resources out of a Terraform state (format version 4).

    Instance index keys become address suffixes: ``[0]`` for counts and
    ``["key"]`` for for_each. Data sources are skipped.
    """
    doc = _parse(doc)
    if not isinstance(doc, dict):
        raise InvalidInputError("Terraform state must be a JSON object")
    version = doc.get("version")
    if version != 4:
        raise InvalidInputError(f"Unsupported Terraform state version: {version}")

    resources = doc.get("resources") or []
    if not isinstance(resources, list):
        raise InvalidInputError("Terraform state 'resources' must be a list")

    entries = []
    for position, res in enumerate(resources):
        if not isinstance(res, dict):
            raise InvalidInputError(f"Terraform state resource {position} must be an object")
        if res.get("mode", "managed") != "managed":
            continue
        resource_type, name = res.get("type"), res.get("name")
        if not isinstance(resource_type, str) or not resource_type or not isinstance(name, str) or not name:
            raise InvalidInputError(f"Terraform state resource {position} needs a 'type' and a 'name'")
        base = f"{resource_type}.{name}"
        if module := res.get("module"):
            base = f"{module}.{base}"

        instances = res.get("instances") or []
        if not isinstance(instances, list):
            raise InvalidInputError(f"Instances of '{base}' must be a list")
        for instance in instances:
            if not isinstance(instance, dict):
                raise InvalidInputError(f"Instances of '{base}' must be objects")
            address = base
            key = instance.get("index_key")
            if key is not None:
                address += f'["{key}"]' if isinstance(key, str) else f"[{key}]"
            attributes = instance.get("attributes") or {}
            if not isinstance(attributes, dict):
                raise InvalidInputError(f"Attributes for '{address}' must be an object")
            entries.append(
                StateEntry(
                    address=address,
                    resource_type=resource_type,
                    name=name,
                    provider=_provider_name(res.get("provider")),
                    region=attributes.get("region"),
                    attributes=attributes,
                )
            )
    return entries


def load_snapshot(doc: Any) -> list[StateEntry]:
    """
    Read an observed-state snapshot.

    Accepts either ``{"address": {attributes}}`` or
    ``{"resources": [{"address": ..., "type": ..., "attributes": {...}}]}``.
    """
    doc = _parse(doc)
    if not isinstance(doc, dict):
        raise InvalidInputError("Snapshot must be a JSON object")

    if isinstance(doc.get("resources"), list):
        entries = []
        for item in doc["resources"]:
            if not isinstance(item, dict) or "address" not in item:
                raise InvalidInputError("Snapshot resources need an 'address'")
            attributes = item.get("attributes") or {}
            if not isinstance(attributes, dict):
                raise InvalidInputError(f"Attributes for '{item['address']}' must be an object")
            entries.append(
                StateEntry(
                    address=item["address"],
                    resource_type=item.get("type") or resource_type_from_address(item["address"]),
                    name=item.get("name"),
                    provider=item.get("provider"),
                    region=item.get("region") or attributes.get("region"),
                    attributes=attributes,
                )
            )
        return entries

    entries = []
    for address, attributes in doc.items():
        if not isinstance(attributes, dict):
            raise InvalidInputError(f"Attributes for '{address}' must be an object")
        entries.append(
            StateEntry(
                address=address,
                resource_type=resource_type_from_address(address),
                region=attributes.get("region"),
                attributes=attributes,
            )
        )
    return entries


def _existing_by_address(session: Session, environment: Environment) -> dict[str, Resource]:
    rows = session.query(Resource).filter(Resource.environment_id == environment.id).all()
    return {r.address: r for r in rows}


def _apply_metadata(resource: Resource, entry: StateEntry) -> None:
    resource.resource_type = entry.resource_type
    resource.name = entry.name or resource.name
    resource.provider = entry.provider or resource.provider
    resource.region = entry.region or resource.region
    tags = entry.attributes.get("tags")
    if isinstance(tags, dict):
        resource.tags = tags
    resource.is_active = True


def record_declared_state(
    session: Session, environment: Environment, entries: list[StateEntry], complete: bool = True
) -> dict[str, int]:
    """
    Upsert declared state. With complete=True, resources absent from entries
    lose their declared state (they become unmanaged, or drop out entirely
    when nothing was observed either).
    """
    now = utcnow()
    existing = _existing_by_address(session, environment)
    counts = {"created": 0, "updated": 0, "undeclared": 0}
    seen = set()

    for entry in entries:
        seen.add(entry.address)
        resource = existing.get(entry.address)
        if resource is None:
            resource = Resource(environment_id=environment.id, address=entry.address)
            session.add(resource)
            existing[entry.address] = resource
            counts["created"] += 1
        else:
            counts["updated"] += 1
        _apply_metadata(resource, entry)
        resource.declared_state = entry.attributes
        resource.declared_at = now

    if complete:
        for address, resource in existing.items():
            if address in seen or resource.declared_state is None:
                continue
            resource.declared_state = None
            resource.declared_at = now
            if resource.actual_state is None:
                resource.is_active = False
            counts["undeclared"] += 1

    session.flush()
    logger.info(f"Recorded declared state for {environment.name}: {counts}")
    return counts


def record_actual_state(
    session: Session, environment: Environment, entries: list[StateEntry], complete: bool = True
) -> dict[str, int]:
    """
    Upsert observed state. With complete=True the snapshot is taken as the
    whole picture, so resources absent from it are marked missing.
    """
    now = utcnow()
    existing = _existing_by_address(session, environment)
    counts = {"created": 0, "updated": 0, "missing": 0}
    seen = set()

    for entry in entries:
        seen.add(entry.address)
        resource = existing.get(entry.address)
        if resource is None:
            resource = Resource(environment_id=environment.id, address=entry.address)
            session.add(resource)
            existing[entry.address] = resource
            counts["created"] += 1
        else:
            counts["updated"] += 1
        _apply_metadata(resource, entry)
        resource.actual_state = entry.attributes
        resource.observed_at = now

    if complete:
        for address, resource in existing.items():
            if address in seen or resource.actual_state is None:
                continue
            resource.actual_state = None
            resource.observed_at = now
            if resource.declared_state is None:
                resource.is_active = False
            counts["missing"] += 1

    session.flush()
    logger.info(f"Recorded actual state for {environment.name}: {counts}")
    return counts
