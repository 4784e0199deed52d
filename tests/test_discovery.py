import pytest

from milight import BridgeGeneration
from milight.io import DiscoveryConst, normalise_mac, parse_reply
from milight.io.discovery import DiscoveryProtocol, parse_bridge_type


@pytest.mark.parametrize("raw, expected", [
    ("ACCF23A1B2C3", "ac:cf:23:a1:b2:c3"),
    ("AC-CF-23-A1-B2-C3", "ac:cf:23:a1:b2:c3"),
    ("ac:cf:23:a1:b2:c3", "ac:cf:23:a1:b2:c3"),
    (" short ", "short"),
])
def test_normalise_mac(raw, expected):
    assert normalise_mac(raw) == expected


def test_parse_reply():
    bridge = parse_reply(b"192.0.2.10,ACCF23A1B2C3,HF-LPB100", BridgeGeneration.IBOX)
    assert bridge.ip == "192.0.2.10"
    assert bridge.mac == "ac:cf:23:a1:b2:c3"
    assert bridge.name == "HF-LPB100"
    assert bridge.generation == BridgeGeneration.IBOX


def test_parse_reply_without_name():
    bridge = parse_reply(b"192.0.2.20,ACCF23001122", BridgeGeneration.LEGACY)
    assert bridge.name == ""


@pytest.mark.parametrize("datagram", [b"", b"garbage", b",ACCF23A1B2C3", b"\xff\xfe"])
def test_parse_reply_rejects_noise(datagram):
    assert parse_reply(datagram, BridgeGeneration.LEGACY) is None


def test_parse_bridge_type():
    assert parse_bridge_type("all") == [BridgeGeneration.LEGACY, BridgeGeneration.IBOX]
    assert parse_bridge_type("v6") == [BridgeGeneration.IBOX]
    assert parse_bridge_type("legacy") == [BridgeGeneration.LEGACY]
    with pytest.raises(ValueError):
        parse_bridge_type("zigbee")


def test_protocol_ignores_echo_and_dedupes():
    probe = DiscoveryConst.PROBES[BridgeGeneration.IBOX]
    protocol = DiscoveryProtocol(BridgeGeneration.IBOX, probe)
    protocol.datagram_received(probe, ("192.0.2.1", 48899))
    protocol.datagram_received(b"192.0.2.10,ACCF23A1B2C3,", ("192.0.2.10", 48899))
    protocol.datagram_received(b"192.0.2.11,ACCF23A1B2C3,", ("192.0.2.11", 48899))
    assert list(protocol.found) == ["ac:cf:23:a1:b2:c3"]
    assert protocol.found["ac:cf:23:a1:b2:c3"].ip == "192.0.2.10"
