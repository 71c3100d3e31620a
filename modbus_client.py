"""
Modbus TCP client for the heat pump controller.

One TCP session, opened once by connect() and shared by every read.
Only FC03 (read holding registers) is used, one register per request.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ConnectionException, ModbusException

from device import INT16_MAX, SCALE_DIVISOR, u16_to_int16

DEFAULT_HOST = "192.168.222.10"
DEFAULT_PORT = 502
DEFAULT_DEVICE_ID = 1
DEFAULT_TIMEOUT = 1.0

log = logging.getLogger("modbus_client")


class ModbusClientError(Exception):
    pass


class DeviceConnectionError(ModbusClientError):
    pass


class ReadError(ModbusClientError):
    def __init__(self, address: int, message: str):
        super().__init__(f"HR{address}: {message}")
        self.address = address


class OutOfRangeError(ReadError):
    def __init__(self, address: int, raw: int):
        super().__init__(address, f"register value is out of range: {raw}")
        self.raw = raw


def parse_address(address: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """Split ``host``, ``host:port`` or ``tcp://host:port`` into (host, port)."""
    address = address.strip()
    if address.startswith("tcp://"):
        address = address[len("tcp://"):]
    if not address:
        return DEFAULT_HOST, default_port
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    if not port.isdigit():
        raise ValueError(f"invalid port in address {address!r}")
    return host or DEFAULT_HOST, int(port)


class ProtocolClient:
    """Reads holding registers from the device and types their values.

    ``strict`` rejects raw values above int16 max with OutOfRangeError
    instead of reinterpreting them as negative numbers. ``reconnect``
    re-opens the session once after a transport failure so the next read
    can succeed; the failing read is still reported.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        device_id: int = DEFAULT_DEVICE_ID,
        timeout: float = DEFAULT_TIMEOUT,
        strict: bool = False,
        reconnect: bool = False,
    ):
        self.host = host
        self.port = port
        self.device_id = device_id
        self.timeout = timeout
        self.strict = strict
        self.reconnect = reconnect
        self._client: Optional[ModbusTcpClient] = None

    def connect(self) -> None:
        client = ModbusTcpClient(self.host, port=self.port, timeout=self.timeout)
        try:
            ok = client.connect()
        except ModbusException as exc:
            raise DeviceConnectionError(f"failed to open modbus connection to {self.host}:{self.port}: {exc}") from exc
        if not ok:
            raise DeviceConnectionError(f"failed to open modbus connection to {self.host}:{self.port}")
        self._client = client
        log.info(f"Connected to {self.host}:{self.port} (device_id={self.device_id})")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def read_register(self, address: int) -> int:
        """Read one holding register and return the raw u16 value."""
        if self._client is None:
            raise ReadError(address, "client is not connected")
        try:
            rr = self._client.read_holding_registers(address, count=1, device_id=self.device_id)
        except ConnectionException as exc:
            self._reopen()
            raise ReadError(address, f"failed to read register: {exc}") from exc
        except ModbusException as exc:
            raise ReadError(address, f"failed to read register: {exc}") from exc

        if rr.isError():
            raise ReadError(address, f"failed to read register: {rr}")
        if not rr.registers:
            raise ReadError(address, "empty response")

        raw = rr.registers[0] & 0xFFFF
        log.debug(f"HR{address} raw={raw}")
        return raw

    def read_signed_register(self, address: int) -> int:
        raw = self.read_register(address)
        if self.strict and raw > INT16_MAX:
            raise OutOfRangeError(address, raw)
        return u16_to_int16(raw)

    def read_scaled_reading(self, address: int) -> float:
        """Pseudo float16: the device reports tenths of a unit as an integer."""
        return self.read_signed_register(address) / SCALE_DIVISOR

    def _reopen(self) -> None:
        if not self.reconnect or self._client is None:
            return
        log.info(f"Reconnecting to {self.host}:{self.port}")
        self._client.close()
        try:
            if not self._client.connect():
                log.warning(f"Reconnect to {self.host}:{self.port} failed")
        except ModbusException as exc:
            log.warning(f"Reconnect to {self.host}:{self.port} failed: {exc}")
