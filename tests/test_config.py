"""Tests for daemon configuration loading."""
import pytest

from netd.config import SOCKET_PATH, ConfigError, DaemonConfig


class TestDaemonConfig:
    """Tests for DaemonConfig."""

    def test_defaults(self):
        config = DaemonConfig()
        assert config.socket_path == SOCKET_PATH == "/var/run/netd.sock"
        assert config.backend == "freebsd"
        assert config.staging_capacity == 64
        assert config.max_fibs == 16
        config.validate()

    def test_from_dict_octal_mode(self):
        config = DaemonConfig.from_dict({"socket_mode": "0660", "backend": "memory"})
        assert config.socket_mode == 0o660
        assert config.backend == "memory"

    def test_unknown_keys(self):
        with pytest.raises(ConfigError, match="sokcet_path"):
            DaemonConfig.from_dict({"sokcet_path": "/tmp/x"})

    @pytest.mark.parametrize("field,value", [
        ("backend", "linux"),
        ("staging_capacity", 0),
        ("max_fibs", 0),
        ("max_request_size", 0),
        ("configurator_timeout", 0),
    ])
    def test_validation(self, field, value):
        config = DaemonConfig(**{field: value})
        with pytest.raises(ConfigError):
            config.validate()


class TestLoad:
    """Tests for DaemonConfig.load."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text(
            "socket_path: /tmp/netd.sock\n"
            "backend: memory\n"
            "stop_on_error: true\n"
            "memory:\n"
            "  interfaces:\n"
            "    - name: em0\n"
            "      ipv4: [10.0.0.1/24]\n"
        )
        config = DaemonConfig.load(str(path), environ={})
        assert config.socket_path == "/tmp/netd.sock"
        assert config.stop_on_error is True
        assert config.memory["interfaces"][0]["name"] == "em0"
        assert config.source == str(path)

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("backend: freebsd\nstaging_capacity: 10\n")
        config = DaemonConfig.load(str(path), environ={
            "NETD_BACKEND": "MEMORY",
            "NETD_STAGING_CAPACITY": "5",
            "NETD_SOCKET": "/tmp/other.sock",
        })
        assert config.backend == "memory"
        assert config.staging_capacity == 5
        assert config.socket_path == "/tmp/other.sock"

    def test_bad_env_number(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("{}\n")
        with pytest.raises(ConfigError):
            DaemonConfig.load(str(path), environ={"NETD_MAX_FIBS": "many"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            DaemonConfig.load(str(tmp_path / "absent.yaml"), environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("backend: [memory\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            DaemonConfig.load(str(path), environ={})

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("- memory\n")
        with pytest.raises(ConfigError):
            DaemonConfig.load(str(path), environ={})

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text("max_fibs: 0\n")
        with pytest.raises(ConfigError, match="max_fibs"):
            DaemonConfig.load(str(path), environ={})

    def test_bad_socket_mode_in_file(self, tmp_path):
        path = tmp_path / "netd.yaml"
        path.write_text('socket_mode: "rw-rw----"\n')
        with pytest.raises(ConfigError, match="socket_mode"):
            DaemonConfig.load(str(path), environ={})
