"""
Interface between the orchestrator and a container runtime.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..MODELS.service_definition import HealthCheck, PortBinding


class ContainerRuntime(ABC):
    """
    Operations the orchestrator needs from a container runtime.
    Implementations raise RuntimeBackendError when an operation fails.
    """

    @abstractmethod
    def build_image(self, tag: str, context_path: str, dockerfile: Optional[str] = None) -> None:
        """Build an image from a build context and tag it."""

    @abstractmethod
    def network_exists(self, name: str) -> bool:
        """Whether a network with this name already exists."""

    @abstractmethod
    def create_network(self, name: str, driver: str, subnet: Optional[str] = None,
                       labels: Optional[Dict[str, str]] = None) -> None:
        """Create a virtual network."""

    @abstractmethod
    def remove_network(self, name: str) -> None:
        """Remove a virtual network."""

    @abstractmethod
    def start_container(self,
                        name: str,
                        image: str,
                        ports: List[PortBinding],
                        networks: Dict[str, List[str]],
                        environment: Optional[Dict[str, str]] = None,
                        command: Optional[List[str]] = None,
                        labels: Optional[Dict[str, str]] = None,
                        health_check: Optional[HealthCheck] = None) -> str:
        """Create and launch a container.

        :param networks: Network name to the DNS aliases the container gets on it.
        :param health_check: Health check the container is started with, if any.
        :return: The container id.
        """

    @abstractmethod
    def stop_container(self, name: str) -> None:
        """Stop and remove a container. Unknown containers are ignored."""

    @abstractmethod
    def is_running(self, name: str) -> bool:
        """Whether the container process is alive."""

    @abstractmethod
    def exit_code(self, name: str) -> Optional[int]:
        """Exit code of a finished container, None while running or unknown."""

    @abstractmethod
    def is_healthy(self, name: str) -> Optional[bool]:
        """Health check verdict, None when the container has no health check."""
