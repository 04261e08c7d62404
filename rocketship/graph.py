"""Dependency graph builder - records resources and the order they must run in.

Nodes are declared up front, in order. A node may only wait on nodes that were
declared before it, so every graph is acyclic by construction and declaration
order is always a valid execution order. The graph only records constraints;
executing them is the job of an engine (``rocketship.engine.Engine`` or the
Pulumi runtime through ``rocketship.pulumi_compiler``).
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from .connection import ConnectionDescriptor, PrivateKey
from .deferred import Deferred, sources_of, walk
from .errors import DuplicateNameError, GraphError

if TYPE_CHECKING:
    from .resources.base import Descriptor

logger = logging.getLogger(__name__)


class Node:
    """A declared unit of remote state.

    Index a node by output name to get a deferred handle to that attribute:

        >>> droplet = graph.declare("rust-web", Droplet(...))
        >>> droplet["ipv4_address"]
        Deferred(rust-web['ipv4_address'])
    """

    def __init__(
        self,
        graph: "Graph",
        name: str,
        descriptor: "Descriptor",
        predecessors: tuple["Node", ...],
        index: int,
    ):
        self.graph = graph
        self.name = name
        self.descriptor = descriptor
        self.predecessors = predecessors
        self.index = index
        self._outputs: dict[str, Deferred] = {}

    @property
    def kind(self) -> str:
        return self.descriptor.kind

    @property
    def dependencies(self) -> list["Node"]:
        """Explicit predecessors followed by nodes whose outputs feed this one."""
        dependencies = list(self.predecessors)
        for owner in sources_of(self.descriptor):
            if not any(owner is seen for seen in dependencies):
                dependencies.append(owner)
        return dependencies

    def output(self, key: str) -> Deferred:
        if key not in self.descriptor.outputs:
            raise GraphError(
                f"{self.kind} '{self.name}' has no output '{key}' "
                f"(available: {', '.join(self.descriptor.outputs) or 'none'})"
            )
        if key not in self._outputs:
            self._outputs[key] = Deferred.attribute(self, key)
        return self._outputs[key]

    def __getitem__(self, key: str) -> Deferred:
        return self.output(key)

    def __repr__(self) -> str:
        return f"Node({self.name!r}, {self.kind})"


class Exports(Mapping):
    """Append-only table of named final outputs of a deployment.

    Values may be plain or deferred. Private keys and connection descriptors
    are refused so credentials never land in stack outputs.
    """

    def __init__(self):
        self._values: dict[str, Any] = {}

    def add(self, name: str, value: Any) -> None:
        if name in self._values:
            raise DuplicateNameError(f"Export '{name}' is already registered")
        for item in walk(value):
            if isinstance(item, (PrivateKey, ConnectionDescriptor)):
                raise GraphError(f"Export '{name}' would expose connection credentials")
        self._values[name] = value
        logger.debug(f"Registered export: {name}")

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Exports({list(self._values)})"


class Graph:
    """Ordered collection of declared nodes plus the exports they produce.

    Example:
        >>> graph = Graph("rocketship")
        >>> droplet = graph.declare("rust-web", Droplet(image="docker-20-04", ...))
        >>> cert = graph.declare("cert", Certificate(domains=["pulumi.example.com"]))
        >>> lb = graph.declare("rocket-lb", LoadBalancer(...), depends_on=[droplet, cert])
        >>> graph.export("lb-address", lb["ip"])
    """

    def __init__(self, name: str = "rocketship"):
        self.name = name
        self.exports = Exports()
        self._nodes: dict[str, Node] = {}

    def declare(
        self,
        name: str,
        descriptor: "Descriptor",
        depends_on: Iterable[Node] = (),
    ) -> Node:
        """Register a node and the nodes it must wait for.

        Nothing is provisioned here; the returned node only carries unresolved
        deferred outputs.

        Raises:
            DuplicateNameError: If ``name`` is already declared in this graph
            GraphError: If a predecessor or an input source is not a node of this graph
        """
        if name in self._nodes:
            raise DuplicateNameError(
                f"Resource '{name}' is already declared in graph '{self.name}'"
            )

        predecessors: list[Node] = []
        for predecessor in depends_on:
            self._require(predecessor, name)
            if not any(predecessor is seen for seen in predecessors):
                predecessors.append(predecessor)
        for owner in sources_of(descriptor):
            self._require(owner, name)

        node = Node(self, name, descriptor, tuple(predecessors), len(self._nodes))
        self._nodes[name] = node

        if predecessors:
            logger.debug(
                f"Declared {node.kind} '{name}' after {', '.join(p.name for p in predecessors)}"
            )
        else:
            logger.debug(f"Declared {node.kind} '{name}'")
        return node

    def export(self, name: str, value: Any) -> None:
        """Register a named final output."""
        for owner in sources_of(value):
            self._require(owner, f"export '{name}'")
        self.exports.add(name, value)

    def _require(self, node: Any, dependent: str) -> None:
        if not isinstance(node, Node) or self._nodes.get(node.name) is not node:
            raise GraphError(
                f"'{dependent}' depends on {node!r}, which is not declared in graph '{self.name}'"
            )

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def successors(self, node: Node) -> list[Node]:
        return [other for other in self._nodes.values() if node in other.dependencies]

    def release_credentials(self) -> int:
        """Zero every private key held by this graph's descriptors.

        Call once the graph has been executed; connections that still need
        their key afterwards fail with CredentialUnavailable.

        Returns:
            Number of keys released by this call
        """
        released = 0
        for node in self._nodes.values():
            for item in walk(node.descriptor):
                if isinstance(item, PrivateKey) and not item.released:
                    item.release()
                    released += 1
        if released:
            logger.debug(f"Released {released} private key(s) held by graph '{self.name}'")
        return released

    def validate(self) -> None:
        """Check that remote shell steps form strict chains.

        A remote shell step may follow at most one other remote shell step and
        may be followed by at most one, so commands on a machine always run in
        one fixed order.

        Raises:
            GraphError: If remote shell steps branch or merge
        """
        for node in self._nodes.values():
            if not node.descriptor.remote_shell:
                continue

            before = [d for d in node.dependencies if d.descriptor.remote_shell]
            if len(before) > 1:
                raise GraphError(
                    f"Remote step '{node.name}' follows several remote steps "
                    f"({', '.join(d.name for d in before)}); chain them instead"
                )

            after = [s for s in self.successors(node) if s.descriptor.remote_shell]
            if len(after) > 1:
                raise GraphError(
                    f"Remote step '{node.name}' is followed by several remote steps "
                    f"({', '.join(s.name for s in after)}); chain them instead"
                )

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __getitem__(self, name: str) -> Node:
        return self._nodes[name]

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Graph({self.name!r}, nodes={list(self._nodes)})"
