"""Rehearsal collaborators - run a deployment graph without touching the network.

The provider invents plausible attributes (addresses come from the
203.0.113.0/24 documentation range) and the transport records commands
instead of running them. Together with ``Engine`` they show the exact order a
real deployment would take.
"""

import itertools
import logging
from pathlib import Path
from typing import Any

from .connection import ConnectionDescriptor
from .errors import RemoteExecutionError
from .resources import (
    Certificate,
    DnsRecord,
    DomainLookup,
    Droplet,
    LoadBalancer,
    SshKeyLookup,
)

logger = logging.getLogger(__name__)


class RehearsalProvider:
    """Provider that fabricates attributes for every resource it is asked for."""

    def __init__(self):
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._ids = itertools.count(1)

    def _address(self, number: int) -> str:
        return f"203.0.113.{number % 254 + 1}"

    async def create(self, kind: str, name: str, properties: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((kind, name, properties))
        number = next(self._ids)
        logger.info(f"[rehearsal] create {kind} '{name}'")

        if kind == Droplet.kind:
            return {"id": str(300000000 + number), "ipv4_address": self._address(number), "name": name}
        if kind == Certificate.kind:
            return {"id": f"cert-{number:04d}", "name": name}
        if kind == LoadBalancer.kind:
            return {"id": f"lb-{number:04d}", "ip": self._address(number)}
        if kind == DnsRecord.kind:
            return {"id": str(number), "fqdn": f"{properties['name']}.{properties['domain']}"}
        return {"id": str(number)}

    async def lookup(self, kind: str, properties: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((kind, properties.get("name", ""), properties))
        logger.info(f"[rehearsal] lookup {kind} '{properties.get('name')}'")

        if kind == SshKeyLookup.kind:
            return {"id": 4242, "name": properties["name"], "fingerprint": "00:00:00:00"}
        if kind == DomainLookup.kind:
            return {"id": properties["name"], "name": properties["name"]}
        return {"id": properties.get("name")}


class RehearsalTransport:
    """Transport that records commands and reports empty output."""

    def __init__(self):
        self.commands: list[tuple[str, str]] = []

    async def run(self, connection: ConnectionDescriptor, command: str) -> tuple[str, str]:
        self.commands.append((connection.host, command))
        logger.info(f"[rehearsal] {connection.user}@{connection.host}$ {command}")
        return "", ""

    async def run_local(self, command: str) -> tuple[str, str]:
        self.commands.append(("localhost", command))
        logger.info(f"[rehearsal] local$ {command}")
        return "", ""

    async def copy(self, connection: ConnectionDescriptor, local_path: str, remote_path: str) -> None:
        if not Path(local_path).is_file():
            raise RemoteExecutionError(f"Local file {local_path} does not exist", command="copy")
        self.commands.append((connection.host, f"copy {local_path} -> {remote_path}"))
        logger.info(f"[rehearsal] copy {local_path} -> {connection.host}:{remote_path}")

    async def probe(self, connection: ConnectionDescriptor) -> bool:
        return True


async def skip_sleep(seconds: float) -> None:
    """Stand-in for asyncio.sleep that only logs the wait."""
    logger.info(f"[rehearsal] would wait {seconds}s")
