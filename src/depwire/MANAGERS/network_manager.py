"""
Network management for services, handling address allocation and name-based service discovery.
"""
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..MODELS.deployment_descriptor import NetworkDefinition, NetworkDriver
from ..exceptions import DescriptorError, NetworkDriverError, UnknownNetworkError

logger = logging.getLogger(__name__)


@dataclass
class NetworkState:
    """Bookkeeping for one materialized network."""

    definition: NetworkDefinition
    subnet: Optional[ipaddress.IPv4Network]
    gateway: Optional[str] = None
    members: Dict[str, str] = field(default_factory=dict)  # service -> address
    dns: Dict[str, str] = field(default_factory=dict)  # hostname -> address

    @property
    def driver(self) -> str:
        return self.definition.driver


class NetworkManager:
    """
    Manages virtual networks, member addresses and per-network DNS.
    Every member is resolvable by its service name from other members of the same network.
    """
    SUBNET_POOL = ipaddress.ip_network("172.28.0.0/16")

    def __init__(self, project_name: str = "depwire"):
        """
        Initializes the network manager.

        :param project_name: Prefix of runtime network names.
        """
        self.project_name = project_name
        self.networks: Dict[str, NetworkState] = {}
        self.service_networks: Dict[str, Dict[str, str]] = {}  # service -> {network: address}

    @property
    def dns_entries(self) -> Dict[str, str]:
        """
        Every hostname known on any network.
        """
        entries = {}
        for state in self.networks.values():
            entries.update(state.dns)
        return entries

    def runtime_name(self, network: str) -> str:
        """
        Name of the network on the container runtime. External networks keep their name.
        """
        state = self.networks.get(network)
        if state and state.definition.external:
            return network
        return f"{self.project_name}_{network}"

    def create_network(self, definition: NetworkDefinition) -> bool:
        """
        Creates a network once. Creating an existing network is a no-op.

        :return: True if the network was created, False if it already existed.
        :raises NetworkDriverError: If the driver is unknown.
        """
        if definition.name in self.networks:
            return False
        try:
            NetworkDriver(definition.driver)
        except ValueError:
            raise NetworkDriverError(
                f"Network '{definition.name}' uses unknown driver '{definition.driver}'")

        subnet = None
        gateway = None
        if definition.driver not in (NetworkDriver.HOST.value, NetworkDriver.NONE.value):
            subnet = self._allocate_subnet(definition)
            gateway = str(next(subnet.hosts()))

        self.networks[definition.name] = NetworkState(definition=definition, subnet=subnet, gateway=gateway)
        logger.info("Created network %s (driver=%s, subnet=%s)", definition.name, definition.driver, subnet)
        return True

    def _allocate_subnet(self, definition: NetworkDefinition) -> ipaddress.IPv4Network:
        used = [s.subnet for s in self.networks.values() if s.subnet is not None]
        if definition.subnet:
            try:
                subnet = ipaddress.ip_network(definition.subnet, strict=False)
            except ValueError as e:
                raise DescriptorError(f"Network '{definition.name}' has an invalid subnet: {e}")
            if any(subnet.overlaps(u) for u in used):
                raise DescriptorError(f"Subnet {subnet} of network '{definition.name}' overlaps another network")
            return subnet

        for candidate in self.SUBNET_POOL.subnets(new_prefix=24):
            if not any(candidate.overlaps(u) for u in used):
                return candidate
        raise DescriptorError("Address pool exhausted")

    def connect_service(self,
                        service: str,
                        network: str,
                        aliases: Iterable[str] = (),
                        ipv4_address: Optional[str] = None) -> str:
        """
        Attaches a service to a network and registers its DNS names.

        :param service: The service name, also its hostname on the network.
        :param network: The network to join.
        :param aliases: Extra hostnames for the service on this network.
        :param ipv4_address: Requested static address.
        :return: The service's address on the network.
        """
        state = self.networks.get(network)
        if state is None:
            raise UnknownNetworkError(service, network)
        if state.driver == NetworkDriver.NONE.value:
            raise NetworkDriverError(f"Network '{network}' uses driver 'none' and cannot be joined")
        if service in state.members:
            return state.members[service]

        if state.driver == NetworkDriver.HOST.value:
            address = "127.0.0.1"
        else:
            address = self._allocate_address(state, ipv4_address)

        state.members[service] = address
        for hostname in [service, *aliases]:
            state.dns[hostname] = address
        self.service_networks.setdefault(service, {})[network] = address
        logger.debug("Connected %s to %s at %s", service, network, address)
        return address

    def _allocate_address(self, state: NetworkState, requested: Optional[str]) -> str:
        taken = set(state.members.values()) | {state.gateway}
        if requested:
            address = ipaddress.ip_address(requested)
            if address not in state.subnet:
                raise DescriptorError(f"Address {requested} is outside subnet {state.subnet}")
            if str(address) in taken:
                raise DescriptorError(f"Address {requested} is already assigned on '{state.definition.name}'")
            return str(address)
        for host in state.subnet.hosts():
            if str(host) not in taken:
                return str(host)
        raise DescriptorError(f"Subnet {state.subnet} of network '{state.definition.name}' is full")

    def disconnect_service(self, service: str, network: Optional[str] = None) -> None:
        """
        Detaches a service from one network, or from all of them.
        """
        joined = self.service_networks.get(service, {})
        for net in [network] if network else list(joined):
            state = self.networks.get(net)
            if state is None or service not in state.members:
                continue
            address = state.members.pop(service)
            state.dns = {h: a for h, a in state.dns.items() if a != address}
            joined.pop(net, None)
        if not joined:
            self.service_networks.pop(service, None)

    def members(self, network: str) -> List[str]:
        state = self.networks.get(network)
        return list(state.members) if state else []

    def remove_network(self, name: str, force: bool = False) -> bool:
        """
        Removes a network. A network with members is kept unless `force` is set.

        :return: True if removed.
        """
        state = self.networks.get(name)
        if state is None:
            return False
        if state.members and not force:
            logger.warning("Network %s still has members %s, not removing", name, ", ".join(state.members))
            return False
        for service in list(state.members):
            self.disconnect_service(service, name)
        del self.networks[name]
        logger.info("Removed network %s", name)
        return True

    def prune(self) -> List[str]:
        """
        Removes every network no service references any more.
        """
        unused = [name for name, state in self.networks.items() if not state.members]
        for name in unused:
            self.remove_network(name)
        return unused

    def resolve_hostname(self, hostname: str, from_service: Optional[str] = None) -> Optional[str]:
        """
        Resolves a hostname as seen from `from_service`: only networks the caller joined are searched.
        Without a caller every network is searched.
        """
        if from_service is None:
            candidates = self.networks.values()
        else:
            candidates = [self.networks[n] for n in self.service_networks.get(from_service, {})]
        for state in candidates:
            if hostname in state.dns:
                return state.dns[hostname]
        return None

    def reverse_lookup(self, address: str, network: Optional[str] = None) -> Optional[str]:
        """
        Finds the service that owns an address.
        """
        states = [self.networks[network]] if network else self.networks.values()
        for state in states:
            if state.driver == NetworkDriver.HOST.value:
                continue
            for service, member_address in state.members.items():
                if member_address == address:
                    return service
        return None

    def get_service_discovery_env(self, service: str) -> Dict[str, str]:
        """
        Generates environment variables pointing at the peers a service can reach.
        Example: FLASK_API_HOST=flask-api
        """
        env = {}
        for network in self.service_networks.get(service, {}):
            for peer in self.networks[network].members:
                if peer == service:
                    continue
                prefix = peer.upper().replace('-', '_').replace('.', '_')
                env[f"{prefix}_HOST"] = peer
        return env

    def generate_hosts_file_content(self, service: Optional[str] = None) -> str:
        """
        Renders an /etc/hosts style view of the names visible to `service` (or all names).
        """
        lines = ["127.0.0.1\tlocalhost"]
        networks = self.service_networks.get(service, {}) if service else self.networks
        for network in networks:
            by_address: Dict[str, List[str]] = {}
            for hostname, address in self.networks[network].dns.items():
                by_address.setdefault(address, []).append(hostname)
            for address, hostnames in by_address.items():
                lines.append(f"{address}\t{' '.join(hostnames)}")
        return "\n".join(lines) + "\n"

    def cleanup(self) -> None:
        """
        Forgets every network and membership.
        """
        self.networks.clear()
        self.service_networks.clear()
