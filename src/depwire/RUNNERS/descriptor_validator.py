"""
Deployment-time validation of a descriptor: references, cycles, ports, networks and build contexts.
"""
import logging
import os
from typing import List

from ..MODELS.deployment_descriptor import DeploymentDescriptor, NetworkDriver, DEFAULT_NETWORK
from ..MODELS.service_definition import PortBinding
from ..exceptions import (
    BuildContextError,
    CircularDependencyError,
    DanglingDependencyError,
    DepwireError,
    DescriptorError,
    NetworkDriverError,
    PortCollisionError,
    UnknownNetworkError,
    ValidationError,
)
from .dependency_resolver import DependencyResolver

logger = logging.getLogger(__name__)

KNOWN_DRIVERS = {driver.value for driver in NetworkDriver}


class DescriptorValidator:
    """
    Collects every problem in a descriptor and reports them together.
    """
    def __init__(self, descriptor: DeploymentDescriptor):
        self.descriptor = descriptor
        self.resolver = DependencyResolver()

    def validate(self, check_build_contexts: bool = True) -> List[str]:
        """
        Validates the descriptor.

        :param check_build_contexts: Whether build context paths must exist on disk.
        :return: Non-fatal warnings.
        :raises ValidationError: Listing every fatal problem found.
        """
        errors: List[DepwireError] = []
        errors.extend(self.check_sources())
        errors.extend(self.check_dependencies())
        errors.extend(self.check_networks())
        errors.extend(self.check_ports())
        if check_build_contexts:
            errors.extend(self.check_build_contexts())

        if errors:
            for error in errors:
                logger.debug("Validation problem: %s", error)
            raise ValidationError(errors)
        return self.warnings()

    def check_sources(self) -> List[DepwireError]:
        return [DescriptorError(f"Service '{name}' has neither 'build' nor 'image'")
                for name, svc in self.descriptor.services.items()
                if not svc.build_context and not svc.image_name]

    def check_dependencies(self) -> List[DepwireError]:
        errors: List[DepwireError] = []
        services = self.descriptor.services
        for name, svc in services.items():
            for dep in svc.dependency_names:
                if dep not in services:
                    errors.append(DanglingDependencyError(name, dep))

        cycle = self.resolver.find_cycle(self.descriptor)
        if cycle:
            errors.append(CircularDependencyError(cycle))
        return errors

    def check_networks(self) -> List[DepwireError]:
        errors: List[DepwireError] = []
        for network in self.descriptor.networks.values():
            if network.driver not in KNOWN_DRIVERS:
                errors.append(NetworkDriverError(
                    f"Network '{network.name}' uses unknown driver '{network.driver}'"))

        for name, svc in self.descriptor.services.items():
            for net in svc.network_names:
                if net not in self.descriptor.networks and net != DEFAULT_NETWORK:
                    errors.append(UnknownNetworkError(name, net))
        return errors

    def check_ports(self) -> List[DepwireError]:
        """
        No two services (nor two bindings of one service) may claim the same host socket.
        """
        errors: List[DepwireError] = []
        claimed: List[tuple] = []  # (service, binding)
        for name, svc in self.descriptor.services.items():
            for binding in svc.ports:
                owner = self._find_claim(claimed, binding)
                if owner is not None:
                    errors.append(PortCollisionError(
                        binding.host_port, name,
                        owner=f"service '{owner}'", protocol=binding.protocol.value))
                    continue
                claimed.append((name, binding))
        return errors

    @staticmethod
    def _find_claim(claimed: List[tuple], binding: PortBinding):
        for owner, existing in claimed:
            if existing.overlaps(binding):
                return owner
        return None

    def check_build_contexts(self) -> List[DepwireError]:
        """
        Build contexts resolve relative to the descriptor's directory.
        """
        errors: List[DepwireError] = []
        for name, svc in self.descriptor.services.items():
            if not svc.build_context:
                continue
            path = self.resolve_build_context(svc.build_context)
            if not os.path.exists(path):
                errors.append(BuildContextError(name, svc.build_context))
            elif not os.path.isdir(path):
                errors.append(BuildContextError(name, svc.build_context, "is not a directory"))
            elif svc.dockerfile_path and not os.path.isfile(os.path.join(path, svc.dockerfile_path)):
                errors.append(BuildContextError(
                    name, svc.build_context, f"has no dockerfile '{svc.dockerfile_path}'"))
        return errors

    def resolve_build_context(self, build_context: str) -> str:
        return os.path.normpath(os.path.join(self.descriptor.base_dir, os.path.expanduser(build_context)))

    def warnings(self) -> List[str]:
        result = []
        for name, svc in self.descriptor.services.items():
            for dep in svc.dependency_names:
                shared = set(svc.network_names) & set(self.descriptor.services[dep].network_names)
                if not shared and not svc.network_mode:
                    result.append(f"Service '{name}' depends on '{dep}' but shares no network with it")
        for net, definition in self.descriptor.networks.items():
            if not definition.external and not self.descriptor.network_members(net):
                result.append(f"Network '{net}' is declared but no service joins it")
        for message in result:
            logger.warning(message)
        return result
