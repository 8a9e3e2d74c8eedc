"""
Tests for the S7 protocol client (snap7 client mocked).
"""

import struct
from unittest.mock import MagicMock

import pytest

from plcmon.collector.config.settings import PLCConfig
from plcmon.collector.readers.s7 import S7Client, parse_address
from plcmon.shared.errors import ConnectError, ReadError


def make_block(start, values):
    """Build a big-endian DB buffer starting at byte `start` from {offset: float}."""
    size = max(values) + 4 - start
    data = bytearray(size)
    for offset, value in values.items():
        data[offset - start:offset - start + 4] = struct.pack(">f", value)
    return data


@pytest.fixture
def snap7_client():
    client = MagicMock()
    client.get_connected.return_value = True
    return client


@pytest.fixture
def plc_config():
    return PLCConfig(host="10.0.0.5", port=102, rack=0, slot=1, timeout=2.0)


@pytest.fixture
def s7(plc_config, snap7_client):
    return S7Client(plc_config, client_factory=lambda: snap7_client)


class TestParseAddress:

    def test_real_address(self):
        address = parse_address("DB1,REAL24")
        assert (address.db, address.kind, address.offset, address.bit) == (1, "REAL", 24, None)
        assert address.size == 4

    def test_case_insensitive(self):
        assert parse_address("db2,int8").kind == "INT"

    def test_bit_address(self):
        address = parse_address("DB3,X4.7")
        assert (address.db, address.kind, address.offset, address.bit) == (3, "X", 4, 7)

    @pytest.mark.parametrize("bad", ["DB1,REAL", "M10.0", "DB1,X4", "DB1,REAL4.1", "DB1,FLOAT4", ""])
    def test_invalid_addresses(self, bad):
        with pytest.raises(ValueError):
            parse_address(bad)


class TestS7Client:

    def test_connect_applies_timeouts(self, s7, snap7_client):
        s7.connect()
        snap7_client.connect.assert_called_once_with("10.0.0.5", 0, 1, 102)
        assert snap7_client.set_param.call_count == 3
        for call in snap7_client.set_param.call_args_list:
            assert call.args[1] == 2000

    def test_connect_failure_raises_connect_error(self, s7, snap7_client):
        snap7_client.connect.side_effect = RuntimeError("TCP : Connection timed out")
        with pytest.raises(ConnectError):
            s7.connect()
        snap7_client.destroy.assert_called_once()

    def test_not_connected_raises_connect_error(self, s7, snap7_client):
        snap7_client.get_connected.return_value = False
        with pytest.raises(ConnectError):
            s7.connect()

    def test_reads_one_span_per_block(self, s7, snap7_client):
        snap7_client.db_read.return_value = make_block(24, {24: 21.5, 28: 22.25, 72: 3.5})
        s7.connect()

        values = s7.read_all(["DB1,REAL24", "DB1,REAL28", "DB1,REAL72"])

        snap7_client.db_read.assert_called_once_with(1, 24, 52)
        assert values == {"DB1,REAL24": 21.5, "DB1,REAL28": 22.25, "DB1,REAL72": 3.5}

    def test_reads_each_block_separately(self, s7, snap7_client):
        blocks = {1: make_block(0, {0: 1.5}), 2: make_block(8, {8: 2.5})}
        snap7_client.db_read.side_effect = lambda db, start, size: blocks[db]
        s7.connect()

        values = s7.read_all(["DB1,REAL0", "DB2,REAL8"])

        assert values == {"DB1,REAL0": 1.5, "DB2,REAL8": 2.5}
        assert snap7_client.db_read.call_count == 2

    def test_integer_and_bit_types(self, s7, snap7_client):
        data = bytearray(8)
        data[0:2] = struct.pack(">h", -12)
        data[2:6] = struct.pack(">i", 70000)
        data[6] = 0b00000100
        snap7_client.db_read.return_value = data
        s7.connect()

        values = s7.read_all(["DB5,INT0", "DB5,DINT2", "DB5,X6.2", "DB5,BYTE6"])

        assert values["DB5,INT0"] == -12
        assert values["DB5,DINT2"] == 70000
        assert values["DB5,X6.2"] is True
        assert values["DB5,BYTE6"] == 4

    def test_short_read_raises_read_error(self, s7, snap7_client):
        snap7_client.db_read.return_value = bytearray(4)
        s7.connect()
        with pytest.raises(ReadError):
            s7.read_all(["DB1,REAL24", "DB1,REAL28"])

    def test_read_failure_raises_read_error(self, s7, snap7_client):
        snap7_client.db_read.side_effect = RuntimeError("CPU : Address out of range")
        s7.connect()
        with pytest.raises(ReadError):
            s7.read_all(["DB1,REAL24"])

    def test_read_without_connection(self, s7):
        with pytest.raises(ReadError):
            s7.read_all(["DB1,REAL24"])

    def test_session_disconnects_after_read_failure(self, s7, snap7_client):
        snap7_client.db_read.side_effect = RuntimeError("boom")
        with pytest.raises(ReadError):
            with s7.session():
                s7.read_all(["DB1,REAL24"])
        snap7_client.disconnect.assert_called_once()
        snap7_client.destroy.assert_called_once()

    def test_session_reconnects_each_time(self, s7, snap7_client):
        snap7_client.db_read.return_value = make_block(24, {24: 1.0})
        for _ in range(2):
            with s7.session():
                s7.read_all(["DB1,REAL24"])
        assert snap7_client.connect.call_count == 2
        assert snap7_client.disconnect.call_count == 2

    def test_health_check(self, s7, snap7_client):
        assert s7.check_health() is True
        snap7_client.connect.side_effect = RuntimeError("unreachable")
        assert s7.check_health() is False
