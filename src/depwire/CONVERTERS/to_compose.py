"""
Exports a descriptor back to normalized long-form compose YAML.
"""
from typing import Any, Dict

import yaml

from ..MODELS.deployment_descriptor import DeploymentDescriptor
from ..MODELS.service_definition import ServiceDefinition


class ComposeExporter:
    """
    Renders the fully interpolated descriptor, the way `depwire config` shows it.
    """

    def __init__(self, descriptor: DeploymentDescriptor):
        self.descriptor = descriptor

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.descriptor.project_name}
        if self.descriptor.version:
            data["version"] = self.descriptor.version
        data["services"] = {name: self._service(svc) for name, svc in self.descriptor.services.items()}
        if self.descriptor.networks:
            data["networks"] = {}
            for name, net in self.descriptor.networks.items():
                entry: Dict[str, Any] = {"name": f"{self.descriptor.project_name}_{name}",
                                         "driver": net.driver}
                if net.external:
                    entry = {"name": name, "external": True}
                if net.subnet:
                    entry["ipam"] = {"config": [{"subnet": net.subnet}]}
                if net.internal:
                    entry["internal"] = True
                data["networks"][name] = entry
        return data

    def _service(self, svc: ServiceDefinition) -> Dict[str, Any]:
        entry: Dict[str, Any] = {}
        if svc.build_context:
            entry["build"] = {"context": svc.build_context}
            if svc.dockerfile_path:
                entry["build"]["dockerfile"] = svc.dockerfile_path
        if svc.image_name:
            entry["image"] = svc.image_name
        if svc.cmd:
            entry["command"] = list(svc.cmd)
        if svc.environment:
            entry["environment"] = dict(svc.environment)
        if svc.ports:
            ports = []
            for p in svc.ports:
                port: Dict[str, Any] = {"target": p.container_port, "protocol": p.protocol.value,
                                        "mode": "ingress"}
                if p.host_port is not None:
                    port["published"] = str(p.host_port)
                if p.host_ip != "0.0.0.0":
                    port["host_ip"] = p.host_ip
                ports.append(port)
            entry["ports"] = ports
        if svc.depends_on:
            entry["depends_on"] = {e.service: {"condition": e.condition.value, "required": e.required}
                                   for e in svc.depends_on}
        if svc.network_mode:
            entry["network_mode"] = svc.network_mode
        elif svc.networks:
            entry["networks"] = {a.network: ({"aliases": a.aliases} if a.aliases else None)
                                 for a in svc.networks}
        if svc.health_check:
            hc = svc.health_check
            entry["healthcheck"] = {"test": list(hc.test), "interval": f"{hc.interval:g}s",
                                    "timeout": f"{hc.timeout:g}s", "retries": hc.retries,
                                    "start_period": f"{hc.start_period:g}s"}
        if svc.hostname:
            entry["hostname"] = svc.hostname
        if svc.labels:
            entry["labels"] = dict(svc.labels)
        return entry

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)
