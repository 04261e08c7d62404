"""Command resources - shell steps run locally or over SSH via pulumi_command."""

import logging
import shlex
from typing import Any, Literal

import pulumi
from pulumi_command import local, remote
from pydantic import model_validator

from ..connection import ConnectionDescriptor
from ..deferred import Input
from ..errors import RemoteExecutionError
from .base import Descriptor

logger = logging.getLogger(__name__)


class RemoteCommand(Descriptor):
    """Run one shell command on a remote machine.

    Outputs the command's captured ``stdout`` and ``stderr``. A non-zero exit
    status fails the step.
    """

    kind = "command:remote:Command"
    outputs = ("stdout", "stderr")
    remote_shell = True

    connection: ConnectionDescriptor
    create: Input[str]
    delete: str | None = None

    async def apply(self, runtime, name: str) -> dict[str, Any]:
        logger.info(f"Running '{self.create}' on {self.connection.host}")
        stdout, stderr = await runtime.transport.run(self.connection, self.create)
        return {"stdout": stdout, "stderr": stderr}

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return remote.Command(
            name,
            connection=self.connection.to_pulumi(),
            create=self.create,
            delete=self.delete,
            opts=opts,
        )


class CopyFile(Descriptor):
    """Copy a local file to a remote path."""

    kind = "command:remote:CopyFile"
    outputs = ()
    remote_shell = True

    connection: ConnectionDescriptor
    local_path: str
    remote_path: str

    async def apply(self, runtime, name: str) -> dict[str, Any]:
        logger.info(f"Copying {self.local_path} to {self.connection.host}:{self.remote_path}")
        await runtime.transport.copy(self.connection, self.local_path, self.remote_path)
        return {}

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return remote.CopyFile(
            name,
            connection=self.connection.to_pulumi(),
            local_path=self.local_path,
            remote_path=self.remote_path,
            opts=opts,
        )


class LocalCommand(Descriptor):
    """Run one shell command on the machine doing the deployment."""

    kind = "command:local:Command"
    outputs = ("stdout", "stderr")

    create: Input[str]
    delete: str | None = None

    async def apply(self, runtime, name: str) -> dict[str, Any]:
        stdout, stderr = await runtime.transport.run_local(self.create)
        return {"stdout": stdout, "stderr": stderr}

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return local.Command(name, create=self.create, delete=self.delete, opts=opts)


class Settle(Descriptor):
    """Wait until a freshly created machine can accept SSH connections.

    ``mode="sleep"`` waits a fixed number of seconds. ``mode="probe"`` polls
    the connection's host with exponential backoff (``base_delay * 2**n``,
    capped at ``max_delay``) and gives up after ``attempts`` tries.
    """

    kind = "command:local:Command"
    outputs = ("stdout", "stderr")

    mode: Literal["sleep", "probe"] = "sleep"
    seconds: int = 30
    connection: ConnectionDescriptor | None = None
    attempts: int = 8
    base_delay: float = 1.0
    max_delay: float = 30.0

    @model_validator(mode="after")
    def _probe_needs_connection(self) -> "Settle":
        if self.mode == "probe" and self.connection is None:
            raise ValueError("Settle in probe mode needs a connection to probe")
        return self

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def apply(self, runtime, name: str) -> dict[str, Any]:
        if self.mode == "sleep":
            logger.info(f"Waiting {self.seconds}s for the machine to settle")
            await runtime.sleep(self.seconds)
            return {"stdout": "", "stderr": ""}

        host = self.connection.host
        for attempt in range(self.attempts):
            if await runtime.transport.probe(self.connection):
                logger.info(f"{host} accepted a connection after {attempt + 1} attempt(s)")
                return {"stdout": f"reachable after {attempt + 1} attempt(s)", "stderr": ""}
            if attempt + 1 < self.attempts:
                delay = self.backoff(attempt)
                logger.debug(f"{host} not reachable yet, retrying in {delay}s")
                await runtime.sleep(delay)

        raise RemoteExecutionError(
            f"{host}:{self.connection.port} not reachable after {self.attempts} attempts",
            command="probe",
        )

    def probe_script(self, host: str) -> str:
        """Bounded shell loop equivalent of the probe, for running under Pulumi."""
        delays = " ".join(str(self.backoff(attempt)) for attempt in range(self.attempts - 1))
        target = f"{shlex.quote(host)} {self.connection.port}"
        return (
            f"for delay in {delays} 0; do "
            f"nc -z -w 5 {target} && exit 0; "
            f'[ "$delay" = 0 ] || sleep "$delay"; '
            f"done; "
            f"echo '{host}:{self.connection.port} not reachable after {self.attempts} attempts' >&2; "
            f"exit 1"
        )

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        if self.mode == "sleep":
            return local.Command(name, create=f"sleep {self.seconds}", opts=opts)
        script = pulumi.Output.from_input(self.connection.host).apply(self.probe_script)
        return local.Command(name, create=script, opts=opts)
