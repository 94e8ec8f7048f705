"""
Parsing of compose port specifications into PortBinding models.
"""
from typing import Any, List, Optional, Tuple
from ..MODELS.service_definition import PortBinding, Protocol
from ..exceptions import DescriptorError


def _parse_range(value: str, spec: str) -> Tuple[int, int]:
    try:
        if '-' in value:
            start, end = value.split('-', 1)
            low, high = int(start), int(end)
        else:
            low = high = int(value)
    except ValueError:
        raise DescriptorError(f"Invalid port specification '{spec}'")
    if low > high or high > 65535:
        raise DescriptorError(f"Invalid port range '{value}' in '{spec}'")
    return low, high


def parse_port_spec(spec: Any) -> List[PortBinding]:
    """
    Parses one entry of a service's `ports` list.

    Accepted forms: "5000", "5000:5000", "127.0.0.1:5000:5000",
    "127.0.0.1::5000", "8053:53/udp", "8000-8002:8000-8002", "9090-9091:8080", a bare
    integer, and the long mapping {target, published, host_ip, protocol}.

    :param spec: The raw port entry.
    :return: One binding per container port.
    :raises DescriptorError: If the entry cannot be interpreted.
    """
    if isinstance(spec, bool):
        raise DescriptorError(f"Invalid port specification '{spec}'")
    if isinstance(spec, int):
        return [PortBinding(container_port=spec)]
    if isinstance(spec, dict):
        return [_parse_long_syntax(spec)]
    if not isinstance(spec, str):
        raise DescriptorError(f"Invalid port specification '{spec}'")

    text = spec.strip()
    protocol = Protocol.TCP
    if '/' in text:
        text, proto = text.rsplit('/', 1)
        try:
            protocol = Protocol(proto.lower())
        except ValueError:
            raise DescriptorError(f"Unknown protocol '{proto}' in port '{spec}'")

    host_ip = "0.0.0.0"
    host_part: Optional[str] = None
    parts = text.rsplit(':', 2)
    if len(parts) == 1:
        container_part = parts[0]
    elif len(parts) == 2:
        host_part, container_part = parts
    else:
        host_ip, host_part, container_part = parts
        host_ip = host_ip.strip('[]') or "0.0.0.0"

    c_low, c_high = _parse_range(container_part, spec)
    container_ports = range(c_low, c_high + 1)
    if host_part:
        h_low, h_high = _parse_range(host_part, spec)
        if c_low == c_high and h_low != h_high:
            # A host range for one container port publishes on the first port of the range
            h_high = h_low
        if (h_high - h_low) != (c_high - c_low):
            raise DescriptorError(f"Host and container port ranges differ in length in '{spec}'")
        host_ports = list(range(h_low, h_high + 1))
    else:
        host_ports = [None] * len(container_ports)

    try:
        return [PortBinding(container_port=c, host_port=h, host_ip=host_ip, protocol=protocol)
                for h, c in zip(host_ports, container_ports)]
    except ValueError as e:
        raise DescriptorError(f"Invalid port specification '{spec}': {e}")


def _parse_long_syntax(spec: dict) -> PortBinding:
    if 'target' not in spec:
        raise DescriptorError(f"Port mapping {spec} is missing 'target'")
    published = spec.get('published')
    try:
        return PortBinding(
            container_port=int(spec['target']),
            host_port=int(published) if published not in (None, '') else None,
            host_ip=spec.get('host_ip', "0.0.0.0"),
            protocol=Protocol(str(spec.get('protocol', 'tcp')).lower()),
        )
    except (ValueError, TypeError) as e:
        raise DescriptorError(f"Invalid port mapping {spec}: {e}")
