"""Tests for the saved configuration store."""
import pytest
import yaml

from netd.errors import SemanticError
from netd.interpreter.schema import AddressFamily, Target, Verb
from netd.persistence.store import ConfigStore, StoredConfig
from netd.system.base import InterfaceInfo, RouteEntry

INTERFACES = [
    InterfaceInfo(name="em0", ipv4=["192.168.1.1/24"], ipv6=["fe80::1/64", "2001:db8::1/64"]),
    InterfaceInfo(name="em1", ipv4=["10.1.0.1/24"], fib=1, tunnel_fib=2),
    InterfaceInfo(name="bridge0"),
]

ROUTES = [
    RouteEntry("192.168.1.0/24", "link#em0", flags="U", netif="em0"),
    RouteEntry("172.16.0.0/12", "192.168.1.254", flags="UGS", netif="em0"),
    RouteEntry("10.9.0.0/16", "10.1.0.254", flags="UGS", netif="em1", fib=1),
    RouteEntry("10.10.0.0/16", "10.1.0.254", flags="UG1", netif="em1", fib=1),
]


class TestStoredConfig:
    """Tests for StoredConfig YAML conversion."""

    def test_header_fields(self):
        stored = StoredConfig.from_yaml(
            "version: 3\nchecksum: sha256:abc\nupdated_at: '2024-01-01T00:00:00+00:00'\n"
            "interfaces: []\nroutes: []\n"
        )
        assert stored.version == 3
        assert stored.checksum == "sha256:abc"
        assert stored.updated_at.year == 2024
        assert stored.config == {"interfaces": [], "routes": []}

    def test_not_a_mapping(self):
        with pytest.raises(SemanticError):
            StoredConfig.from_yaml("- just\n- a list\n")


class TestConfigStore:
    """Tests for ConfigStore save and load."""

    def test_read_missing(self, tmp_path):
        store = ConfigStore(tmp_path / "netd.yaml")
        assert not store.exists()
        assert store.read() is None
        assert store.load() == []

    def test_save_filters(self, tmp_path):
        """Only configured addresses and static gateway routes are saved."""
        store = ConfigStore(tmp_path / "netd.yaml")
        stored = store.save(INTERFACES, ROUTES)

        names = [i["name"] for i in stored.interfaces]
        assert names == ["em0", "em1"]
        assert stored.interfaces[0]["ipv6"] == ["2001:db8::1/64"]
        assert [r["destination"] for r in stored.routes] == ["172.16.0.0/12", "10.9.0.0/16"]

    def test_version_bumps(self, tmp_path):
        store = ConfigStore(tmp_path / "netd.yaml")
        assert store.save(INTERFACES, ROUTES).version == 1
        assert store.save(INTERFACES, ROUTES).version == 2
        assert store.read().version == 2

    def test_creates_parent_directory(self, tmp_path):
        store = ConfigStore(tmp_path / "db" / "netd" / "netd.yaml")
        store.save(INTERFACES, ROUTES)
        assert store.exists()
        assert not (tmp_path / "db" / "netd" / "netd.yaml.tmp").exists()

    def test_checksum_mismatch_still_reads(self, tmp_path, caplog):
        path = tmp_path / "netd.yaml"
        store = ConfigStore(path)
        store.save(INTERFACES, ROUTES)

        data = yaml.safe_load(path.read_text())
        data["routes"] = []
        path.write_text(yaml.dump(data))

        stored = store.read()
        assert stored.routes == []
        assert "Checksum mismatch" in caplog.text

    def test_load_orders_interfaces_first(self, tmp_path):
        store = ConfigStore(tmp_path / "netd.yaml")
        store.save(INTERFACES, ROUTES)

        commands = store.load()

        targets = [c.target for c in commands]
        assert targets == [Target.INTERFACE] * 3 + [Target.ROUTE] * 2
        assert all(c.verb == Verb.SET for c in commands)

        em1 = commands[2].interface
        assert em1.name == "em1"
        assert em1.fib == 1
        assert em1.tunnel_fib == 2

        route = commands[4].route
        assert str(route.network) == "10.9.0.0/16"
        assert route.fib == 1
        assert route.family == AddressFamily.INET4

    def test_load_invalid_value(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("routes:\n- destination: not-an-address\n  gateway: 10.0.0.1\n")
        with pytest.raises(SemanticError):
            ConfigStore(path).load()
