"""
Error taxonomy for descriptor loading, validation and deployment.
"""
from typing import List, Optional, Sequence


class DepwireError(Exception):
    """Base depwire exception class."""

    pass


class DescriptorError(DepwireError):
    """The descriptor is malformed or cannot be interpreted."""

    pass


class BuildContextError(DescriptorError):
    """A service's build context does not exist or is not a directory."""

    def __init__(self, service: str, path: str, reason: str = "does not exist"):
        self.service = service
        self.path = path
        super().__init__(f"Build context '{path}' for service '{service}' {reason}")


class DanglingDependencyError(DescriptorError):
    """A service depends on a service that is not declared."""

    def __init__(self, service: str, target: str):
        self.service = service
        self.target = target
        super().__init__(f"Service '{service}' depends on undefined service '{target}'")


class CircularDependencyError(DescriptorError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class UnknownNetworkError(DescriptorError):
    """A service joins a network that is not declared."""

    def __init__(self, service: str, network: str):
        self.service = service
        self.network = network
        super().__init__(f"Service '{service}' uses undefined network '{network}'")


class NetworkDriverError(DescriptorError):
    """A network driver is unknown or does not support the requested operation."""

    pass


class PortCollisionError(DepwireError):
    """A host port is claimed twice, or is already taken on the host."""

    def __init__(self, port: int, service: str, owner: Optional[str] = None, protocol: str = "tcp"):
        self.port = port
        self.service = service
        self.owner = owner
        self.protocol = protocol
        msg = f"Host port {port}/{protocol} requested by service '{service}' is already in use"
        if owner:
            msg += f" by {owner}"
        super().__init__(msg)


class ValidationError(DescriptorError):
    """Aggregates every problem found while validating a descriptor."""

    def __init__(self, errors: List[DepwireError]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Descriptor is invalid ({len(self.errors)} problem(s)):\n{lines}")


class RuntimeBackendError(DepwireError):
    """The container runtime failed to carry out an operation."""

    pass


class ReadinessTimeoutError(DepwireError):
    """A dependency did not reach the required condition in time."""

    def __init__(self, service: str, dependency: str, condition: str, timeout: float):
        self.service = service
        self.dependency = dependency
        self.condition = condition
        self.timeout = timeout
        super().__init__(
            f"Service '{service}' gave up waiting for '{dependency}' to become "
            f"{condition} after {timeout:.1f}s"
        )


class DependencyFailedError(DepwireError):
    """A dependency can never satisfy the condition its dependent waits for."""

    def __init__(self, service: str, dependency: str, reason: str):
        self.service = service
        self.dependency = dependency
        super().__init__(f"Dependency '{dependency}' of service '{service}' failed: {reason}")
