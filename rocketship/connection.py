"""Connection provisioning - turns a machine node and a local key into SSH details."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pulumi
from pulumi_command import remote
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic_core import core_schema

from .deferred import Input
from .errors import CredentialUnavailable

if TYPE_CHECKING:
    from .graph import Node

logger = logging.getLogger(__name__)

_MASK = "**********"


class PrivateKey:
    """Private key material held only for the lifetime of a deployment.

    The bytes live in a mutable buffer that ``release()`` overwrites with
    zeros. The key never shows up in ``repr``/``str`` output, cannot be
    pickled, and is masked when a model holding it is serialized.

    Example:
        >>> with PrivateKey.read("~/.ssh/id_rsa") as key:
        ...     conn = ConnectionDescriptor(host=droplet["ipv4_address"], private_key=key)
    """

    __slots__ = ("_material", "path")

    def __init__(self, material: bytes, path: Path | None = None):
        self._material: bytearray | None = bytearray(material)
        self.path = path

    @classmethod
    def read(cls, path: str | Path) -> "PrivateKey":
        """Read key bytes from ``path``.

        Raises:
            CredentialUnavailable: If the file is missing, unreadable or empty
        """
        key_path = Path(path).expanduser()
        try:
            material = key_path.read_bytes()
        except OSError as e:
            raise CredentialUnavailable(
                f"Private key unreadable at {key_path}: {e.strerror or e}"
            ) from e
        if not material.strip():
            raise CredentialUnavailable(f"Private key at {key_path} is empty")
        return cls(material, path=key_path)

    @property
    def released(self) -> bool:
        return self._material is None

    def reveal(self) -> str:
        """Return the key as text for handing to an SSH client."""
        if self._material is None:
            raise CredentialUnavailable("Private key has already been released")
        return self._material.decode("utf-8")

    def release(self) -> None:
        """Overwrite the key material with zeros and drop it."""
        if self._material is None:
            return
        for index in range(len(self._material)):
            self._material[index] = 0
        self._material = None

    def __enter__(self) -> "PrivateKey":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"PrivateKey(path={str(self.path)!r}, material='{_MASK}')"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("PrivateKey material cannot be serialized")

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.is_instance_schema(cls)


class ConnectionDescriptor(BaseModel):
    """Everything needed to open an SSH session to a provisioned machine.

    ``host`` is usually a deferred address, so steps can be declared against
    the connection long before the machine exists.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    host: Input[str]
    user: str = "root"
    port: int = 22
    private_key: PrivateKey = Field(repr=False)

    @field_serializer("private_key")
    def _mask_private_key(self, private_key: PrivateKey) -> str:
        return _MASK

    def to_pulumi(self) -> remote.ConnectionArgs:
        """Build pulumi_command connection args; the key travels as a Pulumi secret."""
        return remote.ConnectionArgs(
            host=self.host,
            user=self.user,
            port=self.port,
            private_key=pulumi.Output.secret(self.private_key.reveal()),
        )


def open_connection(
    node: "Node",
    private_key_path: str | Path,
    user: str = "root",
    *,
    address: str = "ipv4_address",
    port: int = 22,
) -> ConnectionDescriptor:
    """Bind a machine's eventual address and a local private key into a connection.

    The key is read now; the address stays deferred until the machine exists.

    Args:
        node: Machine node exposing an address output
        private_key_path: Local private key file
        user: Remote user
        address: Name of the node output holding the host address
        port: SSH port

    Returns:
        ConnectionDescriptor whose host resolves with the machine

    Raises:
        CredentialUnavailable: If the private key cannot be read
    """
    private_key = PrivateKey.read(private_key_path)
    logger.info(f"Opening connection to {node.name} as {user}")
    return ConnectionDescriptor(
        host=node[address],
        user=user,
        port=port,
        private_key=private_key,
    )
