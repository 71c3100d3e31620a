from __future__ import annotations

import argparse
import logging
import threading
from typing import List, Optional, Tuple

from prometheus_client import CollectorRegistry, start_http_server

from collector import MetricCollector, PrometheusCollector
from modbus_client import (
    DEFAULT_DEVICE_ID,
    DEFAULT_HOST,
    DEFAULT_TIMEOUT,
    ModbusClientError,
    ProtocolClient,
    parse_address,
)

DEFAULT_LISTEN = ":9000"
PROBE_REGISTER = 6  # pressure_low

log = logging.getLogger("exporter")


def parse_listen(listen: str) -> Tuple[str, int]:
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address {listen!r}")
    return host or "0.0.0.0", int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modbus-exporter",
        description="Heat pump Modbus TCP -> Prometheus metrics",
    )
    parser.add_argument("-l", "--listen", default=DEFAULT_LISTEN, help="listen address")
    parser.add_argument("-a", "--address", default=DEFAULT_HOST, help="address of the modbus server")
    parser.add_argument("--device-id", type=int, default=DEFAULT_DEVICE_ID)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="connect/request timeout in seconds")
    parser.add_argument("--strict", action="store_true",
                        help="reject register values above int16 max instead of reading them as negative")
    parser.add_argument("--reconnect", action="store_true",
                        help="re-open the modbus session after a transport failure")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def setup(args: argparse.Namespace) -> Tuple[ProtocolClient, CollectorRegistry]:
    """Connect, probe the device once and register the collector.

    Any failure here is fatal: there is no point serving scrapes without
    a working session.
    """
    host, port = parse_address(args.address)
    client = ProtocolClient(
        host,
        port=port,
        device_id=args.device_id,
        timeout=args.timeout,
        strict=args.strict,
        reconnect=args.reconnect,
    )
    client.connect()
    try:
        probe = client.read_scaled_reading(PROBE_REGISTER)
    except ModbusClientError:
        client.close()
        raise
    log.info(f"Probe HR{PROBE_REGISTER} = {probe}")

    registry = CollectorRegistry()
    registry.register(PrometheusCollector(MetricCollector(client)))
    return client, registry


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | EXPORTER | %(levelname)s | %(message)s",
    )

    client = None
    try:
        listen_host, listen_port = parse_listen(args.listen)
        client, registry = setup(args)
        server, _ = start_http_server(listen_port, addr=listen_host, registry=registry)
    except (ModbusClientError, ValueError, OSError) as exc:
        log.error(f"failed to start exporter: {exc}")
        if client is not None:
            client.close()
        return 1

    log.info(f"Metrics: http://{listen_host}:{listen_port}/metrics")

    stop_event = threading.Event()
    try:
        stop_event.wait()
    except KeyboardInterrupt:
        log.info("Shutting down")
        server.shutdown()
        client.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
