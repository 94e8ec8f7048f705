"""
Models describing deployment plans and their outcomes.
"""
from typing import Dict, List
from enum import Enum
from pydantic import BaseModel
from .service_definition import PortBinding


class ServiceState(str, Enum):
    """
    Lifecycle states tracked per service during a deployment.
    """
    PENDING = "pending"
    CREATED = "created"
    RUNNING = "running"
    HEALTHY = "healthy"
    STOPPED = "stopped"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepKind(str, Enum):
    BUILD = "build"
    CREATE_NETWORK = "create_network"
    BIND_PORTS = "bind_ports"
    WAIT_READY = "wait_ready"
    START = "start"


class PlanStep(BaseModel):
    """
    One action the orchestrator will perform.
    """
    kind: StepKind
    target: str
    detail: str = ""

    def __str__(self) -> str:
        text = f"{self.kind.value:15} {self.target}"
        if self.detail:
            text += f" ({self.detail})"
        return text


class DeploymentPlan(BaseModel):
    """
    Everything `up` would do, computed without touching a runtime.
    """
    start_order: List[str]
    steps: List[PlanStep] = []
    port_bindings: Dict[str, List[PortBinding]] = {}
    network_membership: Dict[str, List[str]] = {}


class DeploymentResult(BaseModel):
    """
    Result of a deployment attempt.
    """
    started: List[str] = []
    failed: List[str] = []
    skipped: List[str] = []
    errors: Dict[str, str] = {}

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped
