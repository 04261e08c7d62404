"""Reference execution engine - runs a deployment graph in-process with asyncio.

The production engine is the Pulumi runtime (see ``pulumi_compiler``). This one
executes the same graph against pluggable collaborators, which makes it the
place where ordering and failure rules are observable:

- a node starts only after every node it depends on has finished
- a node whose dependency failed is skipped, never attempted
- after the first failure nothing new starts (unless ``continue_on_error``);
  nodes already running are left to finish and nothing is rolled back
- the export table is resolved only once the whole graph succeeded
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .connection import ConnectionDescriptor
from .deferred import Resolution
from .errors import ProviderError, SkippedError
from .graph import Graph, Node

logger = logging.getLogger(__name__)


class Provider(Protocol):
    """Cloud provider API."""

    async def create(self, kind: str, name: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Provision a resource and return its attributes."""
        ...

    async def lookup(self, kind: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Read an existing entity; raise LookupFailure if it does not exist."""
        ...


class Transport(Protocol):
    """Remote shell transport plus the local shell."""

    async def run(self, connection: ConnectionDescriptor, command: str) -> tuple[str, str]:
        """Run ``command`` remotely; raise RemoteExecutionError on failure."""
        ...

    async def run_local(self, command: str) -> tuple[str, str]:
        ...

    async def copy(self, connection: ConnectionDescriptor, local_path: str, remote_path: str) -> None:
        ...

    async def probe(self, connection: ConnectionDescriptor) -> bool:
        """Return True once the host accepts connections."""
        ...


@dataclass
class Runtime:
    """Collaborators handed to ``Descriptor.apply``."""

    provider: Provider
    transport: Transport
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep


class NodeStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TraceEvent:
    """What happened to one node. ``started``/``finished`` are logical ticks.

    ``started`` stays None for nodes never attempted, including nodes whose
    inputs failed to resolve.
    """

    name: str
    status: NodeStatus = NodeStatus.PENDING
    started: int | None = None
    finished: int | None = None
    error: BaseException | None = None


@dataclass
class RunResult:
    """Outcome of running a graph."""

    graph_name: str
    events: dict[str, TraceEvent]
    outputs: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def executed(self) -> list[str]:
        """Names of nodes that were attempted, in start order."""
        started = [event for event in self.events.values() if event.started is not None]
        return [event.name for event in sorted(started, key=lambda event: event.started)]

    def status(self, name: str) -> NodeStatus:
        return self.events[name].status

    def raise_for_error(self) -> None:
        """Re-raise the error that stopped the run, unchanged."""
        if self.error is not None:
            raise self.error


class Engine:
    """Executes a ``Graph`` in dependency order.

    Independent nodes run concurrently. Every outcome is recorded in the
    returned ``RunResult``; ``run()`` itself only raises for graphs that fail
    validation.

    Args:
        provider: Cloud provider collaborator
        transport: Remote/local shell collaborator
        sleep: Coroutine used for settle delays and probe backoff
        continue_on_error: Keep starting independent nodes after a failure
    """

    def __init__(
        self,
        provider: Provider,
        transport: Transport,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        continue_on_error: bool = False,
    ):
        self.runtime = Runtime(provider=provider, transport=transport, sleep=sleep)
        self.continue_on_error = continue_on_error

    async def run(self, graph: Graph) -> RunResult:
        graph.validate()
        logger.info(f"Running graph '{graph.name}' with {len(graph)} nodes")

        run = _Run(graph, self.runtime, self.continue_on_error)
        await run.execute()

        outputs: dict[str, Any] = {}
        if run.first_error is None:
            try:
                for name, value in graph.exports.items():
                    outputs[name] = await run.resolution.resolve(value)
            except Exception as e:
                logger.error(f"Failed to resolve exports: {e}")
                run.first_error = e
                outputs = {}

        if run.first_error is None:
            logger.info(f"Graph '{graph.name}' completed")
        else:
            logger.error(f"Graph '{graph.name}' failed: {run.first_error}")

        return RunResult(
            graph_name=graph.name,
            events=run.events,
            outputs=outputs,
            error=run.first_error,
        )


class _Run:
    """State of a single execution of a graph."""

    def __init__(self, graph: Graph, runtime: Runtime, continue_on_error: bool):
        self.graph = graph
        self.runtime = runtime
        self.continue_on_error = continue_on_error
        self.events = {node.name: TraceEvent(node.name) for node in graph}
        self.outcomes: dict[str, asyncio.Future] = {}
        self.resolution = Resolution(self._lookup)
        self.first_error: BaseException | None = None
        self._ticks = itertools.count()

    async def _lookup(self, owner: Node, key: str) -> Any:
        outputs = await self.outcomes[owner.name]
        if key not in outputs:
            raise ProviderError(f"{owner.kind} '{owner.name}' did not report '{key}'")
        return outputs[key]

    async def execute(self) -> None:
        for node in self.graph:
            self.outcomes[node.name] = asyncio.ensure_future(self._realize(node))
        await asyncio.gather(*self.outcomes.values(), return_exceptions=True)

    def _skip(self, node: Node, cause: BaseException) -> SkippedError:
        if isinstance(cause, SkippedError):
            cause = cause.cause
        event = self.events[node.name]
        event.status = NodeStatus.SKIPPED
        event.error = cause
        logger.info(f"Skipping {node.name}: {cause}")
        return SkippedError(node.name, cause)

    def _fail(self, node: Node, error: BaseException) -> None:
        event = self.events[node.name]
        event.status = NodeStatus.FAILED
        event.error = error
        if self.first_error is None:
            self.first_error = error
        logger.error(f"{node.name} failed: {error}")

    async def _realize(self, node: Node) -> dict[str, Any]:
        dependencies = node.dependencies
        if dependencies:
            await asyncio.wait([self.outcomes[d.name] for d in dependencies])
            for dependency in dependencies:
                failure = self.outcomes[dependency.name].exception()
                if failure is not None:
                    raise self._skip(node, failure)

        if self.first_error is not None and not self.continue_on_error:
            raise self._skip(node, self.first_error)

        event = self.events[node.name]
        try:
            # Inputs that fail to resolve fail the node before it is attempted
            resolved = await self.resolution.resolve(node.descriptor)
        except Exception as e:
            self._fail(node, e)
            raise

        event.started = next(self._ticks)
        logger.debug(f"Starting {node.kind} '{node.name}'")

        try:
            outputs = await resolved.apply(self.runtime, node.name)
        except Exception as e:
            event.finished = next(self._ticks)
            self._fail(node, e)
            raise

        event.finished = next(self._ticks)
        event.status = NodeStatus.SUCCEEDED
        logger.info(f"Completed {node.kind} '{node.name}'")
        return outputs
