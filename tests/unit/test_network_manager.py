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
Unit tests for the network manager.
"""
import pytest
from depwire.MANAGERS.network_manager import NetworkManager
from depwire.MODELS.deployment_descriptor import NetworkDefinition, NetworkDriver
from depwire.exceptions import DescriptorError, NetworkDriverError, UnknownNetworkError


@pytest.fixture
def mgr():
    manager = NetworkManager(project_name="demo")
    manager.create_network(NetworkDefinition(name="app-network"))
    return manager


class TestNetworkManager:
    """Tests for NetworkManager."""

    def test_create_network_is_idempotent(self, mgr):
        assert mgr.create_network(NetworkDefinition(name="app-network")) is False
        assert list(mgr.networks) == ["app-network"]
        assert mgr.runtime_name("app-network") == "demo_app-network"

    def test_subnets_do_not_overlap(self, mgr):
        mgr.create_network(NetworkDefinition(name="other"))
        first = mgr.networks["app-network"].subnet
        second = mgr.networks["other"].subnet
        assert not first.overlaps(second)
        assert mgr.networks["app-network"].gateway == str(next(first.hosts()))

    def test_explicit_subnet(self):
        mgr = NetworkManager()
        mgr.create_network(NetworkDefinition(name="net", subnet="10.1.2.0/24"))
        ip = mgr.connect_service("web", "net")
        assert ip == "10.1.2.2"
        with pytest.raises(DescriptorError):
            mgr.create_network(NetworkDefinition(name="clash", subnet="10.1.0.0/16"))
        with pytest.raises(DescriptorError):
            mgr.create_network(NetworkDefinition(name="bad", subnet="not-a-subnet"))

    def test_unknown_driver(self):
        with pytest.raises(NetworkDriverError):
            NetworkManager().create_network(NetworkDefinition(name="net", driver="warp"))

    def test_connect_service(self, mgr):
        ip = mgr.connect_service("web", "app-network", aliases=["webserver"])
        assert ip is not None
        assert "web" in mgr.service_networks
        assert "web" in mgr.dns_entries
        assert "webserver" in mgr.dns_entries
        assert mgr.connect_service("web", "app-network") == ip

    def test_connect_to_unknown_network(self, mgr):
        with pytest.raises(UnknownNetworkError):
            mgr.connect_service("web", "nowhere")

    def test_static_address(self, mgr):
        subnet = mgr.networks["app-network"].subnet
        wanted = str(list(subnet.hosts())[9])
        assert mgr.connect_service("db", "app-network", ipv4_address=wanted) == wanted
        with pytest.raises(DescriptorError):
            mgr.connect_service("cache", "app-network", ipv4_address=wanted)
        with pytest.raises(DescriptorError):
            mgr.connect_service("cache", "app-network", ipv4_address="192.0.2.1")

    def test_round_trip_lookup(self, mgr):
        api_ip = mgr.connect_service("flask-api", "app-network")
        app_ip = mgr.connect_service("streamlit-app", "app-network")
        assert mgr.resolve_hostname("flask-api", from_service="streamlit-app") == api_ip
        assert mgr.resolve_hostname("streamlit-app", from_service="flask-api") == app_ip
        assert mgr.reverse_lookup(mgr.resolve_hostname("flask-api", "streamlit-app")) == "flask-api"
        assert api_ip != app_ip

    def test_isolated_networks_do_not_resolve(self, mgr):
        mgr.create_network(NetworkDefinition(name="private"))
        mgr.connect_service("api", "app-network")
        mgr.connect_service("db", "private")
        assert mgr.resolve_hostname("db", from_service="api") is None
        assert mgr.resolve_hostname("db") is not None

    def test_none_driver_cannot_be_joined(self):
        mgr = NetworkManager()
        mgr.create_network(NetworkDefinition(name="off", driver=NetworkDriver.NONE.value))
        with pytest.raises(NetworkDriverError):
            mgr.connect_service("web", "off")

    def test_host_driver(self):
        mgr = NetworkManager()
        mgr.create_network(NetworkDefinition(name="hostnet", driver="host"))
        assert mgr.connect_service("web", "hostnet") == "127.0.0.1"

    def test_get_service_discovery_env(self, mgr):
        mgr.connect_service("flask-api", "app-network")
        mgr.connect_service("streamlit-app", "app-network")
        env = mgr.get_service_discovery_env("streamlit-app")
        assert env == {"FLASK_API_HOST": "flask-api"}

    def test_generate_hosts_content(self, mgr):
        mgr.connect_service("web", "app-network", aliases=["www"])
        content = mgr.generate_hosts_file_content()
        assert "localhost" in content
        assert "web www" in content

    def test_remove_network_with_members(self, mgr):
        mgr.connect_service("web", "app-network")
        assert mgr.remove_network("app-network") is False
        assert mgr.remove_network("app-network", force=True) is True
        assert "web" not in mgr.service_networks

    def test_prune(self, mgr):
        mgr.create_network(NetworkDefinition(name="spare"))
        mgr.connect_service("web", "app-network")
        assert mgr.prune() == ["spare"]
        mgr.disconnect_service("web")
        assert mgr.prune() == ["app-network"]
        assert mgr.networks == {}

    def test_cleanup(self, mgr):
        mgr.connect_service("test", "app-network")
        mgr.cleanup()
        assert len(mgr.service_networks) == 0
        assert len(mgr.dns_entries) == 0


class TestNetworkDriver:
    """Tests for NetworkDriver enum."""

    def test_network_drivers(self):
        assert NetworkDriver.BRIDGE == "bridge"
        assert NetworkDriver.HOST == "host"
        assert NetworkDriver.NONE == "none"
