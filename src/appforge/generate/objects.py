"""Realized platform objects and the transforms applied to them.

Objects are plain manifests (``kind``, ``apiVersion``, ``metadata``,
``spec``). This module holds the accept policies used while pipelines are
realized, the service synthesis pass and the serializer for the final list.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, TextIO

import yaml

from appforge.logging import get_logger

logger = get_logger(__name__)

Object = dict[str, Any]


def object_key(obj: Object) -> tuple[str, str]:
    """Identity of an object: its kind and name."""
    return obj.get("kind", ""), (obj.get("metadata") or {}).get("name", "")


class Acceptor(Protocol):
    """Decides whether a realized object is kept."""

    def accept(self, obj: Object) -> bool: ...


class AcceptFirst:
    """Keeps only the first object with a given kind and name."""

    def __init__(self) -> None:
        self._seen: set[tuple[str, str]] = set()

    def accept(self, obj: Object) -> bool:
        key = object_key(obj)
        if key in self._seen:
            logger.debug("object_skipped_duplicate", kind=key[0], name=key[1])
            return False
        self._seen.add(key)
        return True


def parse_port(value: str) -> tuple[int, str] | None:
    """Parse Docker port notation (``8080/tcp``) into a number and protocol."""
    number, _, protocol = value.partition("/")
    try:
        port = int(number)
    except ValueError:
        return None
    if not 0 < port < 65536:
        return None
    return port, (protocol or "tcp").upper()


def _container_ports(deployment: Object) -> list[tuple[int, str]]:
    ports: list[tuple[int, str]] = []
    template = (deployment.get("spec") or {}).get("template") or {}
    for container in (template.get("spec") or {}).get("containers") or []:
        for port in container.get("ports") or []:
            entry = (port["containerPort"], port.get("protocol", "TCP"))
            if entry not in ports:
                ports.append(entry)
    return ports


def add_services(objects: list[Object]) -> list[Object]:
    """Append a Service for every DeploymentConfig that exposes ports.

    Deployments that already have a Service of the same name are left alone.

    Args:
        objects: Realized objects, in output order

    Returns:
        A new list with the synthesized services appended
    """
    existing = {object_key(obj) for obj in objects}
    services: list[Object] = []
    for obj in objects:
        if obj.get("kind") != "DeploymentConfig":
            continue
        name = obj["metadata"]["name"]
        if ("Service", name) in existing:
            continue
        ports = _container_ports(obj)
        if not ports:
            continue
        selector = (obj.get("spec") or {}).get("selector") or {"deploymentconfig": name}
        services.append(
            {
                "kind": "Service",
                "apiVersion": "v1",
                "metadata": {"name": name},
                "spec": {
                    "selector": dict(selector),
                    "ports": [
                        {
                            "name": f"{port}-{protocol.lower()}",
                            "port": port,
                            "targetPort": port,
                            "protocol": protocol,
                        }
                        for port, protocol in ports
                    ],
                },
            }
        )
        existing.add(("Service", name))
    return [*objects, *services]


def object_list(objects: list[Object]) -> Object:
    """Wrap objects in a ``List`` container."""
    return {"kind": "List", "apiVersion": "v1", "items": list(objects)}


def serialize_objects(objects: list[Object], out: TextIO, output_format: str = "yaml") -> None:
    """Write the object list to a stream as YAML or JSON.

    Raises:
        ValueError: If the output format is not recognized
    """
    container = object_list(objects)
    if output_format == "yaml":
        yaml.safe_dump(container, out, sort_keys=False, default_flow_style=False)
    elif output_format == "json":
        json.dump(container, out, indent=2)
        out.write("\n")
    else:
        raise ValueError(f"Invalid output format: {output_format}. Must be one of {{'yaml', 'json'}}")
