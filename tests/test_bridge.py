"""Tests for the CLI <-> NETCONF-style RPC bridge."""
import pytest
from lxml import etree

from netd.errors import SemanticError, UnknownOperationError, UnknownTargetError
from netd.interpreter import GrammarEngine
from netd.interpreter.schema import Command, Target, Verb
from netd.netconf.bridge import (
    NC_NS,
    NETD_NS,
    cli_to_rpc,
    looks_like_rpc,
    parse_reply,
    reply_data,
    reply_error,
    reply_ok,
    rpc_to_command,
)
from netd.system.base import InterfaceInfo, RouteEntry


engine = GrammarEngine()
NS = {"nc": NC_NS, "n": NETD_NS}


class TestCliToRpc:
    """Tests for building RPCs from commands."""

    def test_show_interface_filter(self):
        root = etree.fromstring(cli_to_rpc(engine.parse("show interface bridge"), "7").encode())
        assert root.get("message-id") == "7"
        assert root.xpath("nc:get-config/nc:source/nc:running", namespaces=NS)
        assert root.xpath("string(//n:interface/n:type)", namespaces=NS) == "bridge"

    def test_set_interface(self):
        command = engine.parse("set interface em0 inet addr 10.0.0.1/24 fib 2 tunnelfib 3")
        root = etree.fromstring(cli_to_rpc(command).encode())
        assert root.xpath("nc:edit-config/nc:target/nc:running", namespaces=NS)
        assert root.xpath("string(//n:interface/n:name)", namespaces=NS) == "em0"
        assert root.xpath("string(//n:address/n:ip)", namespaces=NS) == "10.0.0.1"
        assert root.xpath("string(//n:address/n:prefix-length)", namespaces=NS) == "24"
        assert root.xpath("string(//n:address/n:family)", namespaces=NS) == "ipv4"
        assert root.xpath("string(//n:interface/n:tunnel-fib)", namespaces=NS) == "3"

    def test_delete_marks_operation(self):
        command = engine.parse("delete route protocol static fib 1 inet")
        root = etree.fromstring(cli_to_rpc(command).encode())
        route = root.xpath("//n:route", namespaces=NS)[0]
        assert route.get(f"{{{NC_NS}}}operation") == "delete"
        assert route.xpath("n:destination", namespaces=NS) == []

    def test_show_without_query_payload(self):
        root = etree.fromstring(cli_to_rpc(Command(Verb.SHOW, Target.ROUTE)).encode())
        route = root.xpath("//nc:filter/n:netd-config/n:route", namespaces=NS)
        assert len(route) == 1
        assert len(route[0]) == 0

    @pytest.mark.parametrize("line,operation", [
        ("commit", "commit"),
        ("discard", "discard-changes"),
        ("save", "copy-config"),
    ])
    def test_simple_operations(self, line, operation):
        root = etree.fromstring(cli_to_rpc(engine.parse(line)).encode())
        assert etree.QName(root[0]).localname == operation


class TestRoundTrip:
    """CLI -> RPC -> CLI produces the same command."""

    @pytest.mark.parametrize("line", [
        "show interface",
        "show interface ethernet",
        "show route",
        "show route fib 3 protocol static inet6",
        "help",
        "set interface em0 inet addr 10.0.0.1/24",
        "set interface bridge bridge0 inet6 addr 2001:db8::1/64 fib 1 tunnelfib 2",
        "set route protocol static inet 10.1.0.0/16 10.0.0.254",
        "set route protocol static fib 4 inet6 2001:db8:1::/48 2001:db8::fe",
        "delete route protocol static",
        "delete route protocol static fib 2 inet6",
        "delete route protocol static inet 10.1.0.0/16 10.0.0.254",
        "commit",
        "discard",
        "save",
    ])
    def test_round_trip(self, line):
        command = engine.parse(line)
        parsed, message_id = rpc_to_command(cli_to_rpc(command, "42"))
        assert parsed == command
        assert message_id == "42"


class TestRpcToCommand:
    """Tests for parsing hand-written RPCs."""

    def test_bare_operation_without_namespace(self):
        command, message_id = rpc_to_command("<commit/>")
        assert command == Command(Verb.COMMIT)
        assert message_id == "1"

    def test_edit_config_without_namespaces(self):
        xml = """
        <rpc message-id="5"><edit-config><target><running/></target><config>
          <netd-config><route>
            <family>ipv4</family><destination>10.2.0.0/16</destination>
            <gateway>10.0.0.1</gateway><fib>3</fib>
          </route></netd-config>
        </config></edit-config></rpc>
        """
        command, message_id = rpc_to_command(xml)
        assert message_id == "5"
        assert command.verb == Verb.SET
        assert str(command.route.network) == "10.2.0.0/16"
        assert command.route.fib == 3

    def test_route_filter_is_show_route(self):
        command, _ = rpc_to_command("<get-config><filter><route/></filter></get-config>")
        assert command == engine.parse("show route")

    def test_get_config_without_filter_is_help(self):
        command, _ = rpc_to_command("<rpc><get-config><source><running/></source></get-config></rpc>")
        assert command == Command(Verb.SHOW)

    def test_malformed_xml(self):
        with pytest.raises(UnknownOperationError, match="Malformed XML"):
            rpc_to_command("<rpc><commit></rpc>")

    def test_unknown_operation(self):
        with pytest.raises(UnknownOperationError, match="lock"):
            rpc_to_command("<rpc><lock/></rpc>")

    def test_multiple_operations(self):
        with pytest.raises(UnknownOperationError):
            rpc_to_command("<rpc><commit/><commit/></rpc>")

    def test_copy_config_other_direction(self):
        xml = "<copy-config><target><running/></target><source><startup/></source></copy-config>"
        with pytest.raises(UnknownOperationError):
            rpc_to_command(xml)

    def test_delete_interface_rejected(self):
        xml = """
        <edit-config><config><netd-config>
          <interface operation="delete"><name>em0</name></interface>
        </netd-config></config></edit-config>
        """
        with pytest.raises(UnknownTargetError):
            rpc_to_command(xml)

    def test_set_route_missing_gateway(self):
        xml = """
        <edit-config><config><netd-config><route>
          <family>ipv4</family><destination>10.2.0.0/16</destination>
        </route></netd-config></config></edit-config>
        """
        with pytest.raises(SemanticError):
            rpc_to_command(xml)

    def test_fib_out_of_range(self):
        xml = """
        <get-config><filter><netd-config><route><fib>99</fib></route></netd-config></filter></get-config>
        """
        with pytest.raises(SemanticError):
            rpc_to_command(xml, max_fibs=16)


class TestReplies:
    """Tests for reply construction and parsing."""

    def test_ok(self):
        ok, text = parse_reply(reply_ok("3"))
        assert ok
        assert text == "OK"

    def test_error(self):
        xml = reply_error("3", "route 10.0.0.0/8 not found")
        root = etree.fromstring(xml.encode())
        assert root.xpath("string(//nc:error-tag)", namespaces=NS) == "operation-failed"
        assert parse_reply(xml) == (False, "route 10.0.0.0/8 not found")

    def test_data(self):
        xml = reply_data(
            "4",
            interfaces=[InterfaceInfo("em0", ipv4=["10.0.0.1/24"], ipv6=["2001:db8::1/64"])],
            routes=[RouteEntry("10.1.0.0/16", "10.0.0.254", netif="em0")],
            fib=0,
        )
        root = etree.fromstring(xml.encode())
        families = root.xpath("//n:interface/n:address/n:family/text()", namespaces=NS)
        assert families == ["ipv4", "ipv6"]
        assert root.xpath("string(//n:route/n:protocol)", namespaces=NS) == "static"

        ok, text = parse_reply(xml)
        assert ok
        assert "10.1.0.0/16" in text

    def test_help_text(self):
        root = etree.fromstring(reply_data("1", text="Usage: ...").encode())
        assert root.xpath("string(//n:help)", namespaces=NS) == "Usage: ..."


def test_looks_like_rpc():
    assert looks_like_rpc("  <rpc/>")
    assert not looks_like_rpc("show route")
