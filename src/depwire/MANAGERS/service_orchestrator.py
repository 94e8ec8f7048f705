# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""
Orchestration for multiple services: validation, network materialization, port
binding and dependency-ordered startup on a container runtime.
"""
import logging
from typing import Dict, Iterable, List, Optional

from ..MODELS.deployment_descriptor import DeploymentDescriptor, NetworkDefinition
from ..MODELS.deployment_state import (
    DeploymentPlan,
    DeploymentResult,
    PlanStep,
    ServiceState,
    StepKind,
)
from ..MODELS.service_definition import DependencyCondition, ServiceDefinition
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.descriptor_validator import DescriptorValidator
from ..RUNTIMES.base_runtime import ContainerRuntime
from ..RUNTIMES.memory_runtime import InMemoryRuntime
from ..exceptions import (
    DependencyFailedError,
    DepwireError,
    NetworkDriverError,
    PortCollisionError,
    ReadinessTimeoutError,
    RuntimeBackendError,
)
from .network_manager import NetworkManager
from .port_manager import PortManager
from .readiness_probe import ReadinessProbe

logger = logging.getLogger(__name__)


class ServiceOrchestrator:
    """
    Orchestrates multiple services based on their dependencies.
    """
    def __init__(self,
                 descriptor: DeploymentDescriptor,
                 runtime: Optional[ContainerRuntime] = None,
                 readiness_timeout: float = 60.0,
                 check_host_ports: bool = False,
                 probe: Optional[ReadinessProbe] = None):
        """
        Initializes the orchestrator.

        :param descriptor: Configuration for all services.
        :param runtime: Container runtime to drive. Defaults to a dry-run in-memory runtime.
        :param readiness_timeout: Seconds to wait for each non-trivial dependency condition.
        :param check_host_ports: Also require host ports to be free on this machine.
        :param probe: Readiness probe, built from the runtime when omitted.
        """
        self.descriptor = descriptor
        self.runtime = runtime or InMemoryRuntime()
        self.resolver = DependencyResolver()
        self.validator = DescriptorValidator(descriptor)
        self.network_manager = NetworkManager(descriptor.project_name)
        self.port_manager = PortManager(check_host=check_host_ports)
        self.probe = probe or ReadinessProbe(self.runtime, timeout=readiness_timeout)
        self.states: Dict[str, ServiceState] = {name: ServiceState.PENDING for name in descriptor.services}
        self.started: List[str] = []

    def container_name(self, service: str) -> str:
        return f"{self.descriptor.project_name}-{service}-1"

    def plan(self, services: Optional[Iterable[str]] = None) -> DeploymentPlan:
        """
        Computes what `up` would do without calling the runtime.

        :param services: Restrict to these services and their dependencies.
        :return: The deployment plan.
        """
        order = self.resolver.resolve_order(self.descriptor, services)
        steps: List[PlanStep] = []

        for name in order:
            svc = self.descriptor.services[name]
            if svc.build_context:
                steps.append(PlanStep(kind=StepKind.BUILD, target=name,
                                      detail=svc.image_tag(self.descriptor.project_name)))

        networks: List[str] = []
        for name in order:
            for net in self.descriptor.services[name].network_names:
                if net not in networks:
                    networks.append(net)
        for net in networks:
            definition = self.descriptor.networks.get(net)
            driver = definition.driver if definition else "bridge"
            steps.append(PlanStep(kind=StepKind.CREATE_NETWORK, target=net, detail=f"driver={driver}"))

        for name in order:
            svc = self.descriptor.services[name]
            for edge in svc.depends_on:
                if edge.condition != DependencyCondition.SERVICE_STARTED:
                    steps.append(PlanStep(kind=StepKind.WAIT_READY, target=edge.service,
                                          detail=f"{edge.condition.value}, before {name}"))
            if svc.ports:
                steps.append(PlanStep(kind=StepKind.BIND_PORTS, target=name,
                                      detail=", ".join(str(p) for p in svc.ports)))
            steps.append(PlanStep(kind=StepKind.START, target=name,
                                  detail=", ".join(svc.network_names)))

        return DeploymentPlan(
            start_order=order,
            steps=steps,
            port_bindings={name: list(self.descriptor.services[name].ports) for name in order},
            network_membership={net: [m for m in self.descriptor.network_members(net) if m in order]
                                for net in networks},
        )

    def up(self,
           services: Optional[Iterable[str]] = None,
           check_build_contexts: bool = True,
           build: bool = True) -> DeploymentResult:
        """
        Starts services in dependency order.

        Descriptor problems abort before any container starts. A service that
        fails to start (port collision, runtime error, dependency not ready)
        is marked failed and its dependents are skipped; unrelated services
        still start.

        :param services: Restrict to these services and their dependencies.
        :param check_build_contexts: Require build contexts to exist on disk.
        :param build: Build images for services with a build context.
        :return: What was started, what failed and what was skipped.
        """
        self.validator.validate(check_build_contexts=check_build_contexts)
        order = self.resolver.resolve_order(self.descriptor, services)
        logger.info("Starting services in order: %s", ", ".join(order))

        if build:
            self._build_images(order)
        self._materialize_networks(order)

        result = DeploymentResult()
        for name in order:
            svc = self.descriptor.services[name]
            try:
                self._start_service(svc)
            except (PortCollisionError, ReadinessTimeoutError, DependencyFailedError,
                    RuntimeBackendError, NetworkDriverError) as e:
                logger.error("Service %s failed to start: %s", name, e)
                self.states[name] = ServiceState.FAILED
                result.failed.append(name)
                result.errors[name] = str(e)
                continue
            if self.states[name] == ServiceState.SKIPPED:
                result.skipped.append(name)
                continue
            result.started.append(name)

        return result

    def _build_images(self, order: List[str]) -> None:
        for name in order:
            svc = self.descriptor.services[name]
            if not svc.build_context:
                continue
            tag = svc.image_tag(self.descriptor.project_name)
            context_path = self.validator.resolve_build_context(svc.build_context)
            logger.info("Building %s", name)
            self.runtime.build_image(tag, context_path, svc.dockerfile_path)

    def _materialize_networks(self, order: List[str]) -> None:
        """
        Creates every network the given services join, once, before any of them starts.
        """
        for name in order:
            for net in self.descriptor.services[name].network_names:
                definition = self.descriptor.networks.get(net) or NetworkDefinition(name=net)
                if not self.network_manager.create_network(definition):
                    continue
                runtime_name = self.network_manager.runtime_name(net)
                if self.runtime.network_exists(runtime_name):
                    logger.debug("Network %s already exists", runtime_name)
                    continue
                if definition.external:
                    raise NetworkDriverError(f"External network '{net}' does not exist")
                self.runtime.create_network(runtime_name, definition.driver, definition.subnet,
                                            {"depwire.project": self.descriptor.project_name,
                                             "depwire.network": net})

    def _start_service(self, svc: ServiceDefinition) -> None:
        name = svc.name
        for edge in svc.depends_on:
            dep_state = self.states.get(edge.service)
            if dep_state in (ServiceState.FAILED, ServiceState.SKIPPED):
                if edge.required:
                    logger.warning("Skipping %s: dependency %s did not start", name, edge.service)
                    self.states[name] = ServiceState.SKIPPED
                    return
                logger.warning("Optional dependency %s of %s did not start", edge.service, name)
                continue
            self.probe.wait_for(name, edge.service, self.container_name(edge.service), edge.condition)

        bindings = self.port_manager.reserve(svc)
        attachments = {}
        try:
            for attachment in svc.networks:
                self.network_manager.connect_service(name, attachment.network,
                                                     attachment.aliases, attachment.ipv4_address)
                attachments[self.network_manager.runtime_name(attachment.network)] = \
                    [name, *attachment.aliases]

            environment = self.network_manager.get_service_discovery_env(name)
            environment.update(svc.environment)

            logger.info("Starting service: %s", name)
            self.runtime.start_container(
                self.container_name(name),
                svc.image_tag(self.descriptor.project_name),
                bindings,
                attachments,
                environment=environment,
                command=svc.cmd,
                labels={"depwire.project": self.descriptor.project_name,
                        "depwire.service": name, **svc.labels},
                health_check=svc.health_check,
            )
        except DepwireError:
            self.port_manager.release(name)
            self.network_manager.disconnect_service(name)
            raise

        # Launched, which is not the same as ready
        self.states[name] = ServiceState.RUNNING
        self.started.append(name)

    def down(self) -> List[str]:
        """
        Stops all services in reverse dependency order, then removes networks no service uses.

        :return: Names of the stopped services.
        """
        stopped = []
        for name in self.resolver.shutdown_order(self.descriptor):
            logger.info("Stopping service: %s", name)
            self.runtime.stop_container(self.container_name(name))
            self.port_manager.release(name)
            self.network_manager.disconnect_service(name)
            if self.states[name] in (ServiceState.RUNNING, ServiceState.HEALTHY, ServiceState.CREATED):
                stopped.append(name)
            self.states[name] = ServiceState.STOPPED
        self.started.clear()

        for net, definition in self.descriptor.networks.items():
            if definition.external:
                continue
            runtime_name = self.network_manager.runtime_name(net)
            try:
                if self.runtime.network_exists(runtime_name):
                    self.runtime.remove_network(runtime_name)
            except RuntimeBackendError as e:
                logger.warning("Could not remove network %s: %s", runtime_name, e)
        self.network_manager.prune()
        return stopped

    def ps(self) -> Dict[str, str]:
        """
        Returns the status of all services.

        :return: Service names and their statuses.
        """
        return {name: self.status(name) for name in self.descriptor.services}

    def status(self, name: str) -> str:
        """
        Status of one service. Services this orchestrator has not started are
        looked up on the runtime, so containers from an earlier `up` are reported.
        """
        state = self.states[name]
        if state in (ServiceState.FAILED, ServiceState.SKIPPED, ServiceState.STOPPED):
            return state.value
        container = self.container_name(name)
        exit_code = self.runtime.exit_code(container)
        if exit_code is not None:
            return f"exited({exit_code})"
        if self.runtime.is_running(container):
            if self.runtime.is_healthy(container):
                return ServiceState.HEALTHY.value
            return ServiceState.RUNNING.value
        if state == ServiceState.PENDING:
            return state.value
        return ServiceState.CREATED.value
