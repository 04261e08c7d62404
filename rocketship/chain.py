"""Remote command chains - shell steps that run one after another on a machine.

Every step waits on exactly one predecessor. To run A, then B, then C, pass
each returned step as the next call's predecessor:

    >>> copied = copy_file(graph, conn, "rocket.service", "/etc/systemd/system/rocket.service", settled)
    >>> docker = chain(graph, "where-is-docker", "which docker", conn, copied)
    >>> firewall = chain(graph, "open-firewall", "ufw allow 80", conn, docker)
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

from .connection import ConnectionDescriptor
from .errors import ConfigurationError, GraphError
from .graph import Graph, Node
from .resources import CopyFile, LocalCommand, RemoteCommand, Settle

logger = logging.getLogger(__name__)


def export_output(graph: Graph, name: str, step: Node) -> None:
    """Register ``<name>-stdout`` and ``<name>-stderr`` for a command step."""
    graph.export(f"{name}-stdout", step["stdout"])
    graph.export(f"{name}-stderr", step["stderr"])


def _require_predecessor(name: str, predecessor: Node | None) -> Node:
    if predecessor is None:
        raise GraphError(f"Step '{name}' needs exactly one predecessor")
    return predecessor


def chain(
    graph: Graph,
    name: str,
    command: str,
    connection: ConnectionDescriptor,
    predecessor: Node,
) -> Node:
    """Declare a remote command that runs only after ``predecessor`` completes.

    Returns:
        The declared step, to be used as the next step's predecessor
    """
    predecessor = _require_predecessor(name, predecessor)
    step = graph.declare(
        name,
        RemoteCommand(connection=connection, create=command),
        depends_on=[predecessor],
    )
    export_output(graph, name, step)
    return step


def chain_local(graph: Graph, name: str, command: str, predecessor: Node) -> Node:
    """Declare a local command that runs only after ``predecessor`` completes."""
    predecessor = _require_predecessor(name, predecessor)
    step = graph.declare(name, LocalCommand(create=command), depends_on=[predecessor])
    export_output(graph, name, step)
    return step


def chain_commands(
    graph: Graph,
    commands: Iterable[tuple[str, str]],
    connection: ConnectionDescriptor,
    predecessor: Node,
) -> list[Node]:
    """Thread ``(name, command)`` pairs into one strict chain after ``predecessor``."""
    steps = []
    for name, command in commands:
        predecessor = chain(graph, name, command, connection, predecessor)
        steps.append(predecessor)
    return steps


def settle(
    graph: Graph,
    machine: Node,
    connection: ConnectionDescriptor | None = None,
    *,
    name: str = "sleep",
    mode: Literal["sleep", "probe"] = "sleep",
    seconds: int = 30,
    attempts: int = 8,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> Node:
    """Declare the wait between creating ``machine`` and first connecting to it.

    Raises:
        ConfigurationError: If probe mode is requested without a connection
    """
    if mode == "probe" and connection is None:
        raise ConfigurationError(f"Step '{name}' cannot probe without a connection")
    step = graph.declare(
        name,
        Settle(
            mode=mode,
            seconds=seconds,
            connection=connection if mode == "probe" else None,
            attempts=attempts,
            base_delay=base_delay,
            max_delay=max_delay,
        ),
        depends_on=[machine],
    )
    export_output(graph, name, step)
    return step


def copy_file(
    graph: Graph,
    connection: ConnectionDescriptor,
    local_path: str | Path,
    remote_path: str,
    predecessor: Node,
    *,
    name: str = "copy-file",
) -> Node:
    """Declare an upload that gates every remote command chained after it."""
    predecessor = _require_predecessor(name, predecessor)
    logger.debug(f"Upload of {Path(local_path).name} to {remote_path} waits on {predecessor.name}")
    return graph.declare(
        name,
        CopyFile(connection=connection, local_path=str(local_path), remote_path=remote_path),
        depends_on=[predecessor],
    )
