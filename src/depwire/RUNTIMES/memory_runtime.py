"""
In-memory runtime used for dry runs and tests.
"""
import itertools
import logging
from typing import Dict, List, Optional, Tuple

from ..MODELS.service_definition import HealthCheck, PortBinding
from ..exceptions import RuntimeBackendError
from .base_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class InMemoryRuntime(ContainerRuntime):
    """
    Records every call instead of talking to a container engine.

    Health and completion can be scripted per container: `health[name]` is a
    list of verdicts returned one per `is_healthy` call (the last one repeats),
    and `exit_codes[name]` makes a container report as finished. A container
    started with a health check and no scripted verdicts reports healthy.
    """

    def __init__(self,
                 health: Optional[Dict[str, List[bool]]] = None,
                 exit_codes: Optional[Dict[str, int]] = None,
                 fail_start: Optional[List[str]] = None):
        self.health = {k: list(v) for k, v in (health or {}).items()}
        self.exit_codes = dict(exit_codes or {})
        self.fail_start = set(fail_start or [])
        self.events: List[Tuple[str, str]] = []
        self.images: Dict[str, str] = {}
        self.networks: Dict[str, dict] = {}
        self.containers: Dict[str, dict] = {}
        self._ids = itertools.count(1)

    def build_image(self, tag: str, context_path: str, dockerfile: Optional[str] = None) -> None:
        logger.debug("Recording build of %s from %s", tag, context_path)
        self.events.append(("build", tag))
        self.images[tag] = context_path

    def network_exists(self, name: str) -> bool:
        return name in self.networks

    def create_network(self, name: str, driver: str, subnet: Optional[str] = None,
                       labels: Optional[Dict[str, str]] = None) -> None:
        if name in self.networks:
            raise RuntimeBackendError(f"network with name {name} already exists")
        self.events.append(("create_network", name))
        self.networks[name] = {"driver": driver, "subnet": subnet, "labels": labels or {}}

    def remove_network(self, name: str) -> None:
        self.events.append(("remove_network", name))
        self.networks.pop(name, None)

    def start_container(self,
                        name: str,
                        image: str,
                        ports: List[PortBinding],
                        networks: Dict[str, List[str]],
                        environment: Optional[Dict[str, str]] = None,
                        command: Optional[List[str]] = None,
                        labels: Optional[Dict[str, str]] = None,
                        health_check: Optional[HealthCheck] = None) -> str:
        if name in self.fail_start:
            raise RuntimeBackendError(f"container {name} failed to start")
        for net in networks:
            if net not in self.networks:
                raise RuntimeBackendError(f"network {net} not found")
        self.events.append(("start", name))
        if health_check is not None:
            self.health.setdefault(name, [True])
        container_id = f"{next(self._ids):012x}"
        self.containers[name] = {
            "id": container_id,
            "image": image,
            "ports": list(ports),
            "networks": dict(networks),
            "environment": dict(environment or {}),
            "command": list(command or []),
            "running": True,
        }
        return container_id

    def stop_container(self, name: str) -> None:
        if name in self.containers:
            self.events.append(("stop", name))
            self.containers.pop(name)

    def is_running(self, name: str) -> bool:
        container = self.containers.get(name)
        return bool(container) and name not in self.exit_codes

    def exit_code(self, name: str) -> Optional[int]:
        if name not in self.containers:
            return None
        return self.exit_codes.get(name)

    def is_healthy(self, name: str) -> Optional[bool]:
        verdicts = self.health.get(name)
        if not verdicts:
            return None
        if len(verdicts) > 1:
            return verdicts.pop(0)
        return verdicts[0]
