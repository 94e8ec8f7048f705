"""
Models for the overall deployment descriptor.
"""
from typing import Dict, List, Optional
from enum import Enum
from pydantic import BaseModel
from .service_definition import ServiceDefinition

DEFAULT_NETWORK = "default"


class NetworkDriver(str, Enum):
    """
    Network drivers the descriptor may name.
    """
    BRIDGE = "bridge"
    HOST = "host"
    NONE = "none"
    OVERLAY = "overlay"
    MACVLAN = "macvlan"
    IPVLAN = "ipvlan"


class NetworkDefinition(BaseModel):
    """
    A named virtual network declared at the top level of the descriptor.
    """
    name: str
    driver: str = NetworkDriver.BRIDGE.value
    subnet: Optional[str] = None
    external: bool = False
    internal: bool = False
    labels: Dict[str, str] = {}


class DeploymentDescriptor(BaseModel):
    """
    Complete configuration for a multi-service stack.
    Equivalent to a parsed docker-compose.yml file.
    """
    project_name: str = "depwire"
    version: Optional[str] = None
    base_dir: str = "."
    services: Dict[str, ServiceDefinition]
    networks: Dict[str, NetworkDefinition] = {}

    def network_members(self, network: str) -> List[str]:
        """
        Names of the services that join the given network, in declaration order.
        """
        return [name for name, svc in self.services.items() if network in svc.network_names]

    def without_dependency(self, service: str, target: str) -> "DeploymentDescriptor":
        """
        Copy of the descriptor with one dependency edge removed.
        """
        copy = self.model_copy(deep=True)
        svc = copy.services[service]
        svc.depends_on = [edge for edge in svc.depends_on if edge.service != target]
        return copy
