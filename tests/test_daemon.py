"""Tests for request handling and the socket server."""
import asyncio
import os
import socket
import stat

import pytest
from lxml import etree

from netd.client import NetdClient
from netd.config import ConfigError, DaemonConfig
from netd.daemon import NetdServer, build_parser
from netd.interpreter import GrammarEngine
from netd.netconf.bridge import NC_NS, NETD_NS, cli_to_rpc, parse_reply
from netd.transport import encode_frame, read_frame

SEED = {
    "interfaces": [
        {"name": "em0", "ipv4": ["192.168.1.1/24"]},
        {"name": "em1"},
    ],
}

engine = GrammarEngine()


def make_server(tmp_path, **overrides):
    config = DaemonConfig(
        socket_path=str(tmp_path / "netd.sock"),
        backend="memory",
        memory=SEED,
        state_file=str(tmp_path / "state.yaml"),
        **overrides,
    )
    return NetdServer(config)


class TestCliRequests:
    """Tests for plain-text requests."""

    @pytest.mark.asyncio
    async def test_stage_and_commit(self, tmp_path):
        server = make_server(tmp_path)
        response = await server.handle_request("set interface em1 inet addr 10.0.0.1/24")
        assert "1 pending" in response

        response = await server.handle_request("commit")
        assert response == "Commit complete: 1 change(s) applied"

        response = await server.handle_request("show interface em")
        assert "10.0.0.1/24" in response

    @pytest.mark.asyncio
    async def test_parse_error(self, tmp_path):
        server = make_server(tmp_path)
        response = await server.handle_request("shwo route")
        assert response.startswith("Error: ")
        assert "shwo" in response

    @pytest.mark.asyncio
    async def test_incomplete_command(self, tmp_path):
        server = make_server(tmp_path)
        response = await server.handle_request("set route protocol static")
        assert response.startswith("Error: Incomplete command")

    @pytest.mark.asyncio
    async def test_commit_failure_reported(self, tmp_path):
        server = make_server(tmp_path)
        await server.handle_request("set interface em9 inet addr 10.0.0.1/24")
        response = await server.handle_request("commit")
        assert response.startswith("Error: Commit failed")
        assert "em9" in response

    @pytest.mark.asyncio
    async def test_staging_full(self, tmp_path):
        server = make_server(tmp_path, staging_capacity=1)
        await server.handle_request("set interface em1 inet addr 10.0.0.1/24")
        response = await server.handle_request("set interface em0 inet addr 10.0.1.1/24")
        assert response.startswith("Error:")

    @pytest.mark.asyncio
    async def test_internal_error_is_contained(self, tmp_path):
        server = make_server(tmp_path)

        async def broken(type_filter=""):
            raise RuntimeError("boom")

        server.dispatcher.interfaces.list_interfaces = broken
        assert await server.handle_request("show interface") == "Error: internal error"


class TestRpcRequests:
    """Tests for XML requests."""

    @pytest.mark.asyncio
    async def test_edit_then_commit(self, tmp_path):
        server = make_server(tmp_path)
        rpc = cli_to_rpc(engine.parse("set interface em1 inet6 addr 2001:db8::1/64"), "11")
        reply = await server.handle_request(rpc)
        assert parse_reply(reply) == (True, "OK")
        assert etree.fromstring(reply.encode()).get("message-id") == "11"

        reply = await server.handle_request(cli_to_rpc(engine.parse("commit")))
        assert parse_reply(reply)[0]

    @pytest.mark.asyncio
    async def test_get_config_data(self, tmp_path):
        server = make_server(tmp_path)
        reply = await server.handle_request(cli_to_rpc(engine.parse("show route")))
        root = etree.fromstring(reply.encode())
        destinations = root.xpath(
            "//n:route/n:destination/text()", namespaces={"n": NETD_NS}
        )
        assert destinations == ["192.168.1.0/24"]

    @pytest.mark.asyncio
    async def test_help_rpc(self, tmp_path):
        server = make_server(tmp_path)
        reply = await server.handle_request(cli_to_rpc(engine.parse("help")))
        root = etree.fromstring(reply.encode())
        assert "Usage:" in root.xpath("string(//n:help)", namespaces={"n": NETD_NS})

    @pytest.mark.asyncio
    async def test_rpc_error(self, tmp_path):
        server = make_server(tmp_path)
        reply = await server.handle_request('<rpc message-id="9"><lock/></rpc>')
        root = etree.fromstring(reply.encode())
        assert root.get("message-id") == "9"
        assert root.xpath("//nc:rpc-error", namespaces={"nc": NC_NS})

    @pytest.mark.asyncio
    async def test_malformed_xml(self, tmp_path):
        server = make_server(tmp_path)
        ok, text = parse_reply(await server.handle_request("<rpc><commit>"))
        assert not ok
        assert "Malformed XML" in text


class TestSaveAndLoad:
    """Tests for save and start-up replay."""

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        server = make_server(tmp_path)
        await server.handle_request("set interface em1 inet addr 10.0.0.1/24")
        await server.handle_request("set route protocol static inet 172.16.0.0/12 10.0.0.254")
        await server.handle_request("commit")
        response = await server.handle_request("save")
        assert "version 1" in response

        fresh = make_server(tmp_path)
        assert await fresh.load_saved()
        response = await fresh.handle_request("show route protocol static")
        assert "172.16.0.0/12" in response

    @pytest.mark.asyncio
    async def test_failed_load_leaves_nothing_staged(self, tmp_path):
        server = make_server(tmp_path)
        for prefix in ("10.1.0.0/16", "10.2.0.0/16", "10.3.0.0/16"):
            await server.handle_request(
                f"set route protocol static inet {prefix} 192.168.1.254"
            )
        await server.handle_request("commit")
        await server.handle_request("save")

        small = make_server(tmp_path, staging_capacity=2)
        assert not await small.load_saved()
        assert small.staging.pending == []

        response = await small.handle_request("commit")
        assert response == "No pending changes to commit"

    @pytest.mark.asyncio
    async def test_load_nothing_saved(self, tmp_path):
        server = make_server(tmp_path)
        assert await server.load_saved()

    @pytest.mark.asyncio
    async def test_load_without_state_file(self, tmp_path):
        server = NetdServer(DaemonConfig(backend="memory", memory=SEED))
        assert not await server.load_saved()


class TestSocket:
    """End-to-end tests over the UNIX socket."""

    @pytest.mark.asyncio
    async def test_client_round_trip(self, tmp_path):
        server = make_server(tmp_path, socket_mode=0o600)
        await server.start()
        try:
            mode = os.stat(server.config.socket_path).st_mode
            assert stat.S_IMODE(mode) == 0o600

            async with NetdClient(server.config.socket_path) as client:
                assert "Usage:" in await client.request("help")
                assert "pending" in await client.request("set interface em1 inet addr 10.0.0.1/24")
                assert "applied" in await client.request("commit")
        finally:
            await server.stop()
        assert not os.path.exists(server.config.socket_path)

    @pytest.mark.asyncio
    async def test_oversized_request_drops_client(self, tmp_path):
        server = make_server(tmp_path, max_request_size=16)
        await server.start()
        try:
            reader, writer = await asyncio.open_unix_connection(server.config.socket_path)
            writer.write(encode_frame("x" * 100))
            await writer.drain()
            assert await read_frame(reader) is None
            writer.close()
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_stale_socket_replaced(self, tmp_path):
        path = tmp_path / "netd.sock"
        # Left behind by a daemon that did not shut down cleanly
        leftover = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        leftover.bind(str(path))
        leftover.close()
        assert path.exists()

        server = make_server(tmp_path)
        await server.start()
        try:
            reader, writer = await asyncio.open_unix_connection(str(path))
            writer.write(encode_frame("commit"))
            await writer.drain()
            assert await read_frame(reader) == "No pending changes to commit"
            writer.close()
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_refuses_non_socket(self, tmp_path):
        (tmp_path / "netd.sock").write_text("not a socket")
        server = make_server(tmp_path)
        with pytest.raises(ConfigError):
            await server.start()


def test_parser_flags():
    args = build_parser().parse_args(["--backend", "memory", "--socket", "/tmp/x.sock", "--load"])
    assert args.backend == "memory"
    assert args.socket == "/tmp/x.sock"
    assert args.load


