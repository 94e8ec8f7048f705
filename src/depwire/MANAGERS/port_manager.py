"""
Host port reservation for service port bindings.
"""
import logging
from typing import Dict, List, Optional

from ..MODELS.service_definition import PortBinding, ServiceDefinition
from ..UTILS.port_finder import find_port_owner, get_free_port, is_port_free
from ..exceptions import PortCollisionError

logger = logging.getLogger(__name__)


class PortManager:
    """
    Reserves host ports so that no two services claim the same host socket.
    """
    def __init__(self, check_host: bool = False):
        """
        :param check_host: Also require the port to be bindable on this machine.
        """
        self.check_host = check_host
        self.service_ports: Dict[str, List[PortBinding]] = {}

    def reserve(self, service_def: ServiceDefinition) -> List[PortBinding]:
        """
        Reserves every host port a service declares. Either all ports are reserved or none.

        :param service_def: The service definition.
        :return: Bindings with ephemeral host ports filled in.
        :raises PortCollisionError: If a host port is already claimed.
        """
        if service_def.name in self.service_ports:
            return self.service_ports[service_def.name]

        reserved: List[PortBinding] = []
        for binding in service_def.ports:
            if binding.host_port is None:
                # Dynamically allocate
                binding = binding.model_copy(update={"host_port": self._ephemeral_port(reserved)})
            else:
                owner = self.owner(binding, reserved)
                if owner:
                    raise PortCollisionError(binding.host_port, service_def.name,
                                             owner=owner, protocol=binding.protocol.value)
            reserved.append(binding)

        self.service_ports[service_def.name] = reserved
        if reserved:
            logger.info("Reserved ports for %s: %s", service_def.name, ", ".join(str(b) for b in reserved))
        return reserved

    def owner(self, binding: PortBinding, pending: Optional[List[PortBinding]] = None) -> Optional[str]:
        """
        Who holds the host socket a binding wants, or None if it is free.
        """
        for existing in pending or []:
            if existing.overlaps(binding):
                return "the same service"
        for service, bindings in self.service_ports.items():
            if any(existing.overlaps(binding) for existing in bindings):
                return f"service '{service}'"
        if self.check_host:
            host = '' if binding.host_ip in ("0.0.0.0", "::") else binding.host_ip
            if not is_port_free(binding.host_port, host, binding.protocol.value):
                return find_port_owner(binding.host_port) or "a process on the host"
        return None

    def _ephemeral_port(self, pending: List[PortBinding]) -> int:
        taken = {b.host_port for bindings in self.service_ports.values() for b in bindings}
        taken.update(b.host_port for b in pending)
        while True:
            port = get_free_port()
            if port not in taken:
                return port

    def release(self, service: str) -> None:
        self.service_ports.pop(service, None)

    def bindings(self, service: str) -> List[PortBinding]:
        return list(self.service_ports.get(service, []))

    def get_host_port(self, service: str, container_port: int) -> Optional[int]:
        """
        Returns the host port for a given service and container port.
        """
        for binding in self.service_ports.get(service, []):
            if binding.container_port == container_port:
                return binding.host_port
        return None
