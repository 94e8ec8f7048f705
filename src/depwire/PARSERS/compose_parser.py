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
Parsers for deployment descriptor (docker-compose style) YAML files.
"""
import logging
import os
import re
import shlex
from typing import Dict, Any, List, Optional

import yaml
from dotenv import dotenv_values

from ..MODELS.deployment_descriptor import DeploymentDescriptor, NetworkDefinition, DEFAULT_NETWORK
from ..MODELS.service_definition import (
    ServiceDefinition,
    DependencyEdge,
    DependencyCondition,
    HealthCheck,
    NetworkAttachment,
)
from ..UTILS.string_interpolation import EnvironmentInterpolator
from ..exceptions import DescriptorError
from .port_parser import parse_port_spec

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'(\d+(?:\.\d+)?)(us|ms|s|m|h)')
DURATION_UNITS = {'us': 1e-6, 'ms': 1e-3, 's': 1.0, 'm': 60.0, 'h': 3600.0}


def parse_duration(value: Any) -> float:
    """
    Converts a compose duration ("30s", "1m30s", "500ms" or a number) to seconds.
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    matches = DURATION_PATTERN.findall(text)
    if not matches or ''.join(n + u for n, u in matches) != text:
        raise DescriptorError(f"Invalid duration '{value}'")
    return sum(float(n) * DURATION_UNITS[u] for n, u in matches)


def normalize_project_name(name: str) -> str:
    normalized = re.sub(r'[^a-z0-9_-]', '', name.lower())
    return normalized or "depwire"


class ComposeParser:
    """
    Parser for docker-compose.yml deployment descriptors.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None, env_file: Optional[str] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: A dictionary of environment variables for interpolation.
            Defaults to the process environment.
        :param env_file: Path of a .env file whose values sit underneath the context.
            Defaults to `.env` beside the descriptor.
        """
        self.context = context if context is not None else dict(os.environ)
        self.env_file = env_file

    def parse(self, compose_path: str, project_name: Optional[str] = None) -> DeploymentDescriptor:
        """
        Parses a descriptor from a path.

        :param compose_path: Path to the compose file.
        :param project_name: Overrides the project name.
        :return: Parsed descriptor.
        """
        base_dir = os.path.dirname(os.path.abspath(compose_path))
        try:
            with open(compose_path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise DescriptorError(f"Cannot read descriptor {compose_path}: {e.strerror}")
        return self.parse_from_string(content, base_dir=base_dir, project_name=project_name)

    def parse_from_string(self,
                          content: str,
                          base_dir: str = ".",
                          project_name: Optional[str] = None) -> DeploymentDescriptor:
        """
        Parses a descriptor from a string.

        :param content: YAML content of the compose file.
        :param base_dir: Directory relative paths (build contexts, .env) resolve against.
        :param project_name: Overrides the project name.
        :return: Parsed descriptor.
        """
        context = dict(self._load_env_file(base_dir))
        context.update(self.context)

        # Interpolate variables before parsing YAML
        missing: List[str] = []
        try:
            content = EnvironmentInterpolator.interpolate(content, context, missing)
        except KeyError as e:
            raise DescriptorError(f"Required variable is not set: {e.args[0]}")
        for name in sorted(set(missing)):
            logger.warning("The %s variable is not set. Defaulting to a blank string.", name)

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DescriptorError(f"Descriptor is not valid YAML: {e}")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise DescriptorError("Descriptor root must be a mapping")

        raw_services = data.get('services')
        if not isinstance(raw_services, dict) or not raw_services:
            raise DescriptorError("Descriptor must declare at least one service under 'services'")

        services = {}
        for name, spec in raw_services.items():
            if spec is None:
                spec = {}
            if not isinstance(spec, dict):
                raise DescriptorError(f"Service '{name}' must be a mapping")
            services[str(name)] = self._parse_service(str(name), spec)

        networks = self._parse_networks(data.get('networks'))
        if any(DEFAULT_NETWORK in svc.network_names for svc in services.values()) \
                and DEFAULT_NETWORK not in networks:
            networks[DEFAULT_NETWORK] = NetworkDefinition(name=DEFAULT_NETWORK)

        version = data.get('version')
        name = project_name or data.get('name') or os.path.basename(os.path.abspath(base_dir))
        return DeploymentDescriptor(
            project_name=normalize_project_name(str(name)),
            version=str(version) if version is not None else None,
            base_dir=base_dir,
            services=services,
            networks=networks,
        )

    def _load_env_file(self, base_dir: str) -> Dict[str, str]:
        path = self.env_file or os.path.join(base_dir, '.env')
        if not os.path.isfile(path):
            if self.env_file:
                raise DescriptorError(f"Env file {path} not found")
            return {}
        logger.debug("Loading interpolation variables from %s", path)
        return {k: v for k, v in dotenv_values(path).items() if v is not None}

    def _parse_networks(self, raw: Any) -> Dict[str, NetworkDefinition]:
        if not raw:
            return {}
        if not isinstance(raw, dict):
            raise DescriptorError("'networks' must be a mapping")

        networks = {}
        for name, spec in raw.items():
            spec = spec or {}
            if not isinstance(spec, dict):
                raise DescriptorError(f"Network '{name}' must be a mapping")
            subnet = None
            ipam = self._mapping(spec.get('ipam'), f"'ipam' of network '{name}'")
            ipam_config = ipam.get('config') or []
            if ipam_config and isinstance(ipam_config[0], dict):
                subnet = ipam_config[0].get('subnet')
            external = spec.get('external', False)
            try:
                networks[str(name)] = NetworkDefinition(
                    name=str(name),
                    driver=spec.get('driver') or 'bridge',
                    subnet=subnet,
                    external=bool(external),
                    internal=bool(spec.get('internal', False)),
                    labels=self._to_dict(spec.get('labels')),
                )
            except ValueError as e:
                raise DescriptorError(f"Invalid definition for network '{name}': {e}")
        return networks

    def _parse_service(self, name: str, spec: Dict[str, Any]) -> ServiceDefinition:
        """
        Parses a single service definition from a compose file.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :return: A ServiceDefinition instance.
        """
        build = spec.get('build')
        if isinstance(build, dict):
            build_context = build.get('context', '.')
            dockerfile = build.get('dockerfile')
        else:
            build_context = str(build) if build is not None else None
            dockerfile = None

        ports = []
        raw_ports = spec.get('ports') or []
        if not isinstance(raw_ports, list):
            raise DescriptorError(f"'ports' of service '{name}' must be a list")
        for p in raw_ports:
            ports.extend(parse_port_spec(p))

        network_mode = spec.get('network_mode')
        try:
            if network_mode:
                networks = []
            else:
                networks = self._parse_service_networks(name, spec.get('networks'))
            return ServiceDefinition(
                name=name,
                image_name=spec.get('image'),
                build_context=build_context,
                dockerfile_path=dockerfile,
                cmd=self._to_command(spec.get('command')),
                environment=self._to_dict(spec.get('environment')),
                ports=ports,
                networks=networks,
                network_mode=network_mode,
                hostname=spec.get('hostname'),
                health_check=self._parse_health_check(spec.get('healthcheck')),
                depends_on=self._parse_depends_on(name, spec.get('depends_on')),
                labels=self._to_dict(spec.get('labels')),
            )
        except (ValueError, TypeError) as e:
            raise DescriptorError(f"Invalid definition for service '{name}': {e}")

    def _parse_depends_on(self, name: str, raw: Any) -> List[DependencyEdge]:
        if not raw:
            return []
        if isinstance(raw, list):
            return [DependencyEdge(service=str(dep)) for dep in raw]
        if isinstance(raw, dict):
            edges = []
            for dep, opts in raw.items():
                opts = self._mapping(opts, f"Dependency '{dep}' of service '{name}'")
                condition = opts.get('condition', DependencyCondition.SERVICE_STARTED.value)
                try:
                    condition = DependencyCondition(condition)
                except ValueError:
                    raise DescriptorError(
                        f"Service '{name}' uses unknown dependency condition '{condition}'")
                edges.append(DependencyEdge(service=str(dep),
                                            condition=condition,
                                            required=bool(opts.get('required', True))))
            return edges
        raise DescriptorError(f"'depends_on' of service '{name}' must be a list or mapping")

    def _parse_service_networks(self, name: str, raw: Any) -> List[NetworkAttachment]:
        if raw is None:
            # Services without a networks key join the project's default network
            return [NetworkAttachment(network=DEFAULT_NETWORK)]
        if isinstance(raw, list):
            return [NetworkAttachment(network=str(n)) for n in raw]
        if isinstance(raw, dict):
            attachments = []
            for net, opts in raw.items():
                opts = self._mapping(opts, f"Network '{net}' of service '{name}'")
                aliases = opts.get('aliases') or []
                if not isinstance(aliases, list):
                    raise DescriptorError(f"Aliases of service '{name}' on network '{net}' must be a list")
                attachments.append(NetworkAttachment(
                    network=str(net),
                    aliases=[str(a) for a in aliases],
                    ipv4_address=opts.get('ipv4_address'),
                ))
            return attachments
        raise DescriptorError(f"'networks' of service '{name}' must be a list or mapping")

    def _parse_health_check(self, raw: Any) -> Optional[HealthCheck]:
        raw = self._mapping(raw, "'healthcheck'")
        if not raw or raw.get('disable'):
            return None
        test = raw.get('test', [])
        if isinstance(test, str):
            test = ["CMD-SHELL", test]
        elif not isinstance(test, list):
            raise DescriptorError(f"Health check test must be a string or list, not {test!r}")
        if test[:1] == ["NONE"]:
            return None
        return HealthCheck(
            test=[str(t) for t in test],
            interval=parse_duration(raw.get('interval', 30)),
            timeout=parse_duration(raw.get('timeout', 30)),
            retries=int(raw.get('retries', 3)),
            start_period=parse_duration(raw.get('start_period', 0)),
        )

    def _to_command(self, val: Any) -> List[str]:
        """
        Helper to ensure a command is a list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return shlex.split(val)
        return [str(v) for v in val]

    def _to_dict(self, val: Any) -> Dict[str, str]:
        """
        Helper for environment and labels, which accept KEY=VALUE lists or mappings.
        """
        if not val:
            return {}
        if isinstance(val, list):
            result = {}
            for item in val:
                key, _, value = str(item).partition('=')
                result[key] = value
            return result
        if not isinstance(val, dict):
            raise DescriptorError(f"Expected a list or mapping, got {val!r}")
        return {str(k): '' if v is None else str(v) for k, v in val.items()}

    @staticmethod
    def _mapping(val: Any, what: str) -> Dict[str, Any]:
        """
        Helper for keys that take a mapping or nothing.
        """
        if val is None:
            return {}
        if not isinstance(val, dict):
            raise DescriptorError(f"{what} must be a mapping")
        return val
