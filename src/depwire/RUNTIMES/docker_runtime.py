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
Runtime backed by the `docker` command line client.
"""
import logging
import os
import shlex
import subprocess
from typing import Dict, List, Optional

from ..MODELS.service_definition import HealthCheck, PortBinding
from ..exceptions import RuntimeBackendError
from .base_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class DockerCliRuntime(ContainerRuntime):
    """
    Drives a local Docker engine through its CLI.
    """

    def __init__(self, executable: str = "docker"):
        """
        :param executable: The docker compatible client to call (e.g. `podman`).
        """
        self.executable = executable

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.executable, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise RuntimeBackendError(f"{self.executable} executable not found")
        if check and proc.returncode != 0:
            raise RuntimeBackendError(
                f"`{' '.join(cmd)}` failed with exit code {proc.returncode}: {proc.stderr.strip()}")
        return proc

    def build_image(self, tag: str, context_path: str, dockerfile: Optional[str] = None) -> None:
        args = ["build", "-t", tag]
        if dockerfile:
            args += ["-f", os.path.join(context_path, dockerfile)]
        args.append(context_path)
        logger.info("Building image %s from %s", tag, context_path)
        self._run(*args)

    def network_exists(self, name: str) -> bool:
        return self._run("network", "inspect", name, check=False).returncode == 0

    def create_network(self, name: str, driver: str, subnet: Optional[str] = None,
                       labels: Optional[Dict[str, str]] = None) -> None:
        args = ["network", "create", "--driver", driver]
        if subnet:
            args += ["--subnet", subnet]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args.append(name)
        self._run(*args)

    def remove_network(self, name: str) -> None:
        self._run("network", "rm", name)

    def start_container(self,
                        name: str,
                        image: str,
                        ports: List[PortBinding],
                        networks: Dict[str, List[str]],
                        environment: Optional[Dict[str, str]] = None,
                        command: Optional[List[str]] = None,
                        labels: Optional[Dict[str, str]] = None,
                        health_check: Optional[HealthCheck] = None) -> str:
        # `docker run` accepts a single network, the rest are connected afterwards
        network_names = list(networks)
        args = ["run", "-d", "--name", name]
        for binding in ports:
            host = f"{binding.host_port}:" if binding.host_port else ""
            if host and binding.host_ip not in ("0.0.0.0", ""):
                host = f"{binding.host_ip}:{host}"
            args += ["-p", f"{host}{binding.container_port}/{binding.protocol.value}"]
        for key, value in (environment or {}).items():
            args += ["-e", f"{key}={value}"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args += self._health_args(health_check)
        if network_names:
            args += ["--network", network_names[0]]
            for alias in networks[network_names[0]]:
                args += ["--network-alias", alias]
        args.append(image)
        args += list(command or [])

        container_id = self._run(*args).stdout.strip()
        for net in network_names[1:]:
            connect = ["network", "connect"]
            for alias in networks[net]:
                connect += ["--alias", alias]
            self._run(*connect, net, name)
        return container_id

    @staticmethod
    def _health_args(health_check: Optional[HealthCheck]) -> List[str]:
        if health_check is None or not health_check.test or health_check.test[0] == "NONE":
            return []
        kind, *test = health_check.test
        if kind == "CMD-SHELL":
            cmd = " ".join(test)
        elif kind == "CMD":
            cmd = " ".join(shlex.quote(arg) for arg in test)
        else:
            cmd = " ".join(shlex.quote(arg) for arg in health_check.test)
        return ["--health-cmd", cmd,
                "--health-interval", f"{health_check.interval:g}s",
                "--health-timeout", f"{health_check.timeout:g}s",
                "--health-retries", str(health_check.retries),
                "--health-start-period", f"{health_check.start_period:g}s"]

    def stop_container(self, name: str) -> None:
        self._run("rm", "-f", name, check=False)

    def _inspect(self, name: str, template: str) -> Optional[str]:
        proc = self._run("inspect", "--format", template, name, check=False)
        if proc.returncode != 0:
            return None
        return proc.stdout.strip()

    def is_running(self, name: str) -> bool:
        return self._inspect(name, "{{.State.Running}}") == "true"

    def exit_code(self, name: str) -> Optional[int]:
        status = self._inspect(name, "{{.State.Status}}")
        if status != "exited":
            return None
        code = self._inspect(name, "{{.State.ExitCode}}")
        return int(code) if code is not None else None

    def is_healthy(self, name: str) -> Optional[bool]:
        status = self._inspect(name, "{{if .State.Health}}{{.State.Health.Status}}{{end}}")
        if not status:
            return None
        return status == "healthy"
