"""
Rocketship errors - one class per failure family a deployment can hit.
"""


class RocketshipError(Exception):
    """Base exception for all Rocketship errors."""
    pass


class ConfigurationError(RocketshipError):
    """Errors in configuration."""
    pass


class GraphError(RocketshipError):
    """A deployment graph was declared in a way that cannot be executed."""
    pass


class DuplicateNameError(GraphError):
    """Two nodes (or two exports) were declared under the same name."""
    pass


class LookupFailure(RocketshipError):
    """A named external entity (SSH key, domain) does not exist."""
    pass


class CredentialUnavailable(RocketshipError):
    """Private key material could not be read."""
    pass


class ProviderError(RocketshipError):
    """The cloud provider rejected a descriptor or failed to provision it."""
    pass


class ConversionError(RocketshipError):
    """A typed transformation of a deferred value failed."""
    pass


class RemoteExecutionError(RocketshipError):
    """A remote command, file copy or readiness probe failed."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_status: int | None = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class SkippedError(RocketshipError):
    """A node was never attempted because something it waited on failed."""

    def __init__(self, name: str, cause: BaseException):
        super().__init__(f"{name} skipped: {cause}")
        self.name = name
        self.cause = cause


class DeploymentError(RocketshipError):
    """Errors during deployment."""
    pass
