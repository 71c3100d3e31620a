"""Pytest fixtures: a fake pymodbus TCP client standing in for the device."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from pymodbus.exceptions import ConnectionException

import modbus_client
from modbus_client import ProtocolClient


class FakeResponse:
    def __init__(self, registers=None, error=False):
        self.registers = registers or []
        self._error = error

    def isError(self):
        return self._error

    def __repr__(self):
        return "FakeResponse(error)" if self._error else f"FakeResponse({self.registers})"


class FakeModbusTcpClient:
    """Holding registers in a dict; addresses in ``failing`` answer with an exception response."""

    def __init__(self, host, port=502, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.registers = {}
        self.failing = set()
        self.dropped = set()
        self.connect_ok = True
        self.connects = 0
        self.closes = 0
        self.reads = []
        FakeModbusTcpClient.last = self

    def connect(self):
        self.connects += 1
        return self.connect_ok

    def close(self):
        self.closes += 1

    def read_holding_registers(self, address, count=1, device_id=1):
        self.reads.append((address, count, device_id))
        if address in self.dropped:
            raise ConnectionException("connection lost")
        if address in self.failing:
            return FakeResponse(error=True)
        return FakeResponse([self.registers.get(address, 0)])


@pytest.fixture
def fake_tcp(monkeypatch):
    monkeypatch.setattr(modbus_client, "ModbusTcpClient", FakeModbusTcpClient)
    return FakeModbusTcpClient


@pytest.fixture
def client(fake_tcp):
    c = ProtocolClient("127.0.0.1", port=1502)
    c.connect()
    return c


@pytest.fixture
def device(client):
    """The fake pymodbus client behind ``client``."""
    return client._client
