"""
Models for defining services, including port bindings, dependency edges and health checks.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class Protocol(str, Enum):
    """
    Transport protocols a port binding can forward.
    """
    TCP = "tcp"
    UDP = "udp"
    SCTP = "sctp"


class DependencyCondition(str, Enum):
    """
    State a dependency must reach before its dependent is created.
    """
    SERVICE_STARTED = "service_started"
    SERVICE_HEALTHY = "service_healthy"
    SERVICE_COMPLETED_SUCCESSFULLY = "service_completed_successfully"


class PortBinding(BaseModel):
    """
    A single host-to-container port mapping.
    A host port of None asks for an ephemeral port.
    """
    container_port: int = Field(..., ge=1, le=65535)
    host_port: Optional[int] = Field(None, ge=0, le=65535)
    host_ip: str = "0.0.0.0"
    protocol: Protocol = Protocol.TCP

    def overlaps(self, other: "PortBinding") -> bool:
        """
        Whether two bindings would claim the same host socket.
        """
        if self.host_port is None or other.host_port is None:
            return False
        if self.host_port != other.host_port or self.protocol != other.protocol:
            return False
        wildcard = ("0.0.0.0", "::", "")
        return self.host_ip in wildcard or other.host_ip in wildcard or self.host_ip == other.host_ip

    def __str__(self) -> str:
        host = "" if self.host_port is None else f"{self.host_port}:"
        if self.host_ip not in ("0.0.0.0", "") and host:
            host = f"{self.host_ip}:{host}"
        return f"{host}{self.container_port}/{self.protocol.value}"


class DependencyEdge(BaseModel):
    """
    Ordering constraint: the owning service waits for `service`.
    """
    service: str
    condition: DependencyCondition = DependencyCondition.SERVICE_STARTED
    required: bool = True


class HealthCheck(BaseModel):
    """
    Defines a command to run to check the health of a service.
    """
    test: List[str]
    interval: float = 30.0
    timeout: float = 30.0
    retries: int = 3
    start_period: float = 0.0


class NetworkAttachment(BaseModel):
    """
    Membership of a service in a network, with extra DNS aliases.
    """
    network: str
    aliases: List[str] = []
    ipv4_address: Optional[str] = None


class ServiceDefinition(BaseModel):
    """
    The full definition of a single service, translated from the descriptor.
    """
    name: str
    image_name: Optional[str] = None
    build_context: Optional[str] = None
    dockerfile_path: Optional[str] = None

    # Execution
    cmd: List[str] = []
    environment: Dict[str, str] = {}

    # Networking
    ports: List[PortBinding] = []
    networks: List[NetworkAttachment] = []
    network_mode: Optional[str] = None
    hostname: Optional[str] = None

    # Lifecycle
    health_check: Optional[HealthCheck] = None
    depends_on: List[DependencyEdge] = []

    labels: Dict[str, str] = {}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Service name cannot be empty")
        return v

    @property
    def dependency_names(self) -> List[str]:
        return [edge.service for edge in self.depends_on]

    @property
    def network_names(self) -> List[str]:
        return [attachment.network for attachment in self.networks]

    def image_tag(self, project_name: str) -> str:
        """
        Image name to run: the declared image, or `<project>-<service>` for built services.
        """
        if self.image_name:
            return self.image_name
        return f"{project_name}-{self.name}"
