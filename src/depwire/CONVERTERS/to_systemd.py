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
Converters for generating systemd unit files from a deployment descriptor.
"""
import logging
import os
import re
from typing import Any, Dict
from jinja2 import Environment
from ..MODELS.deployment_descriptor import DeploymentDescriptor
from ..RUNNERS.dependency_resolver import DependencyResolver

logger = logging.getLogger(__name__)

UNSAFE_WORD = re.compile(r'[\s"\'\\;]')


def systemd_quote(value: Any) -> str:
    """
    Quotes one ExecStart= argument so systemd passes it through as a single word.
    """
    text = str(value).replace('%', '%%').replace('$', '$$')
    if text and not UNSAFE_WORD.search(text):
        return text
    return '"' + text.replace('\\', '\\\\').replace('"', '\\"') + '"'


NETWORK_TEMPLATE = """[Unit]
Description={{ project }} network {{ name }}
After=docker.service
Requires=docker.service

[Service]
Type=oneshot
RemainAfterExit=yes
ExecStart=/bin/sh -c 'docker network inspect {{ runtime_name }} >/dev/null 2>&1 || docker network create --driver {{ driver }}{% if subnet %} --subnet {{ subnet }}{% endif %} {{ runtime_name }}'
ExecStop=-/usr/bin/docker network rm {{ runtime_name }}

[Install]
WantedBy=multi-user.target
"""

SERVICE_TEMPLATE = """[Unit]
Description={{ project }} service {{ name }}
After=docker.service{% for net in networks %} {{ project }}-network-{{ net }}.service{% endfor %}{% for dep in depends_on %} {{ project }}-{{ dep }}.service{% endfor %}
Requires=docker.service{% for net in networks %} {{ project }}-network-{{ net }}.service{% endfor %}{% for dep in depends_on %} {{ project }}-{{ dep }}.service{% endfor %}

[Service]
Restart=on-failure
ExecStartPre=-/usr/bin/docker rm -f {{ container }}
ExecStart=/usr/bin/docker run --rm --name {{ container }}{% for port in ports %} -p {{ port }}{% endfor %}{% if networks %} --network {{ project }}_{{ networks[0] }} --network-alias {{ name }}{% endif %}{% for k, v in environment.items() %} -e {{ (k ~ "=" ~ v) | systemd_quote }}{% endfor %} {{ image }}{% for arg in command %} {{ arg | systemd_quote }}{% endfor %}
{% for net in networks[1:] %}ExecStartPost=/usr/bin/docker network connect --alias {{ name }} {{ project }}_{{ net }} {{ container }}
{% endfor %}ExecStop=/usr/bin/docker stop {{ container }}

[Install]
WantedBy=multi-user.target
"""


class SystemdConverter:
    """
    Converts a deployment descriptor into systemd unit files.
    Dependency edges become After=/Requires= ordering between units.
    """

    def __init__(self, descriptor: DeploymentDescriptor):
        """
        Initializes the systemd converter.

        :param descriptor: The parsed deployment descriptor.
        """
        self.descriptor = descriptor
        env = Environment()
        env.filters["systemd_quote"] = systemd_quote
        self.service_template = env.from_string(SERVICE_TEMPLATE)
        self.network_template = env.from_string(NETWORK_TEMPLATE)

    def render(self) -> Dict[str, str]:
        """
        Renders every unit.

        :return: Unit file names mapped to their content, services in start order.
        """
        project = self.descriptor.project_name
        units = {}

        used_networks = []
        for svc in self.descriptor.services.values():
            for net in svc.network_names:
                if net not in used_networks:
                    used_networks.append(net)
        for net in used_networks:
            definition = self.descriptor.networks.get(net)
            external = definition is not None and definition.external
            if external:
                continue
            units[f"{project}-network-{net}.service"] = self.network_template.render(
                project=project,
                name=net,
                runtime_name=f"{project}_{net}",
                driver=definition.driver if definition else "bridge",
                subnet=definition.subnet if definition else None,
            )

        for name in DependencyResolver().resolve_order(self.descriptor):
            svc = self.descriptor.services[name]
            units[f"{project}-{name}.service"] = self.service_template.render(
                project=project,
                name=name,
                container=f"{project}-{name}-1",
                image=svc.image_tag(project),
                depends_on=svc.dependency_names,
                networks=[n for n in svc.network_names
                          if not (n in self.descriptor.networks and self.descriptor.networks[n].external)],
                ports=[str(p) for p in svc.ports],
                environment=svc.environment,
                command=svc.cmd,
            )
        return units

    def convert(self, output_dir: str = "systemd") -> str:
        """
        Generates systemd unit files.

        :param output_dir: The directory where unit files will be created.
        :return: The path to the output directory.
        """
        os.makedirs(output_dir, exist_ok=True)

        for filename, content in self.render().items():
            with open(os.path.join(output_dir, filename), "w") as f:
                f.write(content)

        logger.info("Systemd unit files generated in %s", output_dir)
        return output_dir
