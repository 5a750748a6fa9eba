import json

import pytest

from gyroaim.net.endpoint import (
    PayloadError,
    ServiceAddress,
    build_connection_payload,
    guess_local_ip,
    parse_connection_payload,
    validate_port,
)


@pytest.mark.parametrize(
    "payload",
    [
        "192.168.1.20:7777",
        " 192.168.1.20:7777 ",
        "gyro://192.168.1.20:7777",
        '{"ip": "192.168.1.20", "port": 7777}',
    ],
)
def test_parse_connection_payload_accepts_supported_forms(payload):
    assert parse_connection_payload(payload) == ServiceAddress("192.168.1.20", 7777)


@pytest.mark.parametrize(
    "payload",
    [
        "",
        "192.168.1.20",
        "192.168.1.20:notaport",
        "192.168.1.20:0",
        "192.168.1.20:70000",
        ":7777",
        "{not json",
        '{"ip": "192.168.1.20"}',
        '{"ip": "192.168.1.20", "port": "7777"}',
        '{"ip": 5, "port": 7777}',
        "[1, 2]",
    ],
)
def test_parse_connection_payload_rejects_malformed(payload):
    with pytest.raises(PayloadError):
        parse_connection_payload(payload)


def test_build_connection_payload_is_compact_json():
    text = build_connection_payload("10.0.0.5", 7777)
    assert text == '{"ip":"10.0.0.5","port":7777}'
    assert json.loads(text) == {"ip": "10.0.0.5", "port": 7777}
    assert parse_connection_payload(text) == ServiceAddress("10.0.0.5", 7777)


def test_validate_port_names_flag():
    assert validate_port(0, "--listen-port", allow_zero=True) == 0
    with pytest.raises(ValueError, match="--listen-port"):
        validate_port(0, "--listen-port")
    with pytest.raises(ValueError):
        validate_port(True)


def test_service_address_str():
    assert str(ServiceAddress("127.0.0.1", 9000)) == "127.0.0.1:9000"
    assert ServiceAddress("127.0.0.1", 9000).as_tuple() == ("127.0.0.1", 9000)


def test_guess_local_ip_returns_ipv4_text():
    ip = guess_local_ip()
    assert ip.count(".") == 3
