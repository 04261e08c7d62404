"""Base descriptor class for Rocketship resources."""

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import pulumi
from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from rocketship.engine import Runtime

logger = logging.getLogger(__name__)


class Descriptor(BaseModel):
    """Desired state of one remote resource - all descriptors inherit from this.

    A descriptor is pure data. Fields may hold deferred values produced by
    other nodes; by the time ``apply()`` or ``to_pulumi()`` runs, the engine has
    replaced them with resolved content (reference engine) or ``pulumi.Output``
    values (Pulumi compiler).

    Class attributes:
        kind: Type token, matching the Pulumi type the descriptor lowers to
        outputs: Names of the attributes a provisioned instance exposes
        remote_shell: True for steps that run over an SSH connection
        lookup: True for read-only queries of existing provider state
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: ClassVar[str] = "rocketship:index:Descriptor"
    outputs: ClassVar[tuple[str, ...]] = ()
    remote_shell: ClassVar[bool] = False
    lookup: ClassVar[bool] = False

    def properties(self) -> dict[str, Any]:
        """Plain-data view of the descriptor handed to providers."""
        return self.model_dump()

    async def apply(self, runtime: "Runtime", name: str) -> dict[str, Any]:
        """Realize this descriptor against the reference engine's collaborators.

        Cloud resources go to the provider; lookups are read from it. Command
        descriptors override this to talk to the transport instead.

        Returns:
            Mapping with one entry per name in ``outputs``
        """
        if self.lookup:
            return await runtime.provider.lookup(self.kind, self.properties())
        return await runtime.provider.create(self.kind, name, self.properties())

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        """Create the Pulumi resource (or invoke) for this descriptor.

        Returns:
            Object whose attributes named in ``outputs`` are Pulumi outputs
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement to_pulumi()"
        )
