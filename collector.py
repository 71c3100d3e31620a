"""
Poll cycle: walk the register map, decode each value, count scrapes and errors.

MetricCollector is protocol-agnostic and returns plain samples.
PrometheusCollector adapts it to prometheus_client's custom collector API.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from device import REGISTER_MAP, DecodeKind, RegisterDefinition, fixed, high_pressure, low_pressure
from modbus_client import ModbusClientError

GAUGE = "gauge"
COUNTER = "counter"

SCRAPE_COUNT = "scrape_count"
MODBUS_ERROR_COUNT = "modbus_error_count"

log = logging.getLogger("collector")


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    description: str
    kind: str


@dataclass(frozen=True)
class DecodedSample:
    name: str
    value: float
    precision: int
    kind: str = GAUGE
    description: str = ""


SCRAPE_COUNT_DESC = MetricDescriptor(SCRAPE_COUNT, "number of times the exporter has been scraped", COUNTER)
MODBUS_ERROR_COUNT_DESC = MetricDescriptor(MODBUS_ERROR_COUNT, "number of times the modbus client observes an error", COUNTER)


def _decoders(client) -> Dict[DecodeKind, Callable[[int], float]]:
    return {
        DecodeKind.SIGNED_INT16: lambda reg: float(client.read_signed_register(reg)),
        DecodeKind.PSEUDO_FLOAT16: client.read_scaled_reading,
        DecodeKind.LOW_PRESSURE: lambda reg: low_pressure(client.read_scaled_reading(reg)),
        DecodeKind.HIGH_PRESSURE: lambda reg: high_pressure(client.read_scaled_reading(reg)),
    }


class MetricCollector:
    """Runs one poll cycle per collect() call.

    Cycles are serialized by a lock: the protocol client has a single
    session and concurrent scrapes would interleave requests on it.
    Counters live on the instance and are only touched under the lock.
    """

    def __init__(self, client, register_map: Iterable[RegisterDefinition] = REGISTER_MAP):
        self.client = client
        self.register_map = tuple(register_map)
        self.scrape_count = 0
        self.error_count = 0
        self._lock = threading.Lock()
        self._decode = _decoders(client)

    def describe(self) -> List[MetricDescriptor]:
        descs = [SCRAPE_COUNT_DESC]
        descs.extend(MetricDescriptor(rdef.name, rdef.description, GAUGE) for rdef in self.register_map)
        descs.append(MODBUS_ERROR_COUNT_DESC)
        return descs

    def collect(self) -> List[DecodedSample]:
        with self._lock:
            return list(self._poll())

    def _poll(self) -> Iterator[DecodedSample]:
        self.scrape_count += 1
        yield DecodedSample(SCRAPE_COUNT, float(self.scrape_count), 0, COUNTER, SCRAPE_COUNT_DESC.description)

        for rdef in self.register_map:
            try:
                value = self._decode[rdef.kind](rdef.address)
            except ModbusClientError as exc:
                self.error_count += 1
                log.warning(f"failed to request data for {rdef.name}: {exc}")
                continue
            yield DecodedSample(rdef.name, fixed(value, rdef.precision), rdef.precision, GAUGE, rdef.description)

        yield DecodedSample(MODBUS_ERROR_COUNT, float(self.error_count), 0, COUNTER,
                            MODBUS_ERROR_COUNT_DESC.description)


class PrometheusCollector:
    """prometheus_client collector backed by a MetricCollector."""

    def __init__(self, collector: MetricCollector):
        self.collector = collector

    def describe(self) -> Iterator[Metric]:
        for desc in self.collector.describe():
            yield _family(desc.name, desc.description, desc.kind)

    def collect(self) -> Iterator[Metric]:
        for sample in self.collector.collect():
            family = _family(sample.name, sample.description, sample.kind)
            family.add_metric([], sample.value)
            yield family


def _family(name: str, documentation: str, kind: str) -> Metric:
    if kind == COUNTER:
        return CounterMetricFamily(name, documentation)
    return GaugeMetricFamily(name, documentation)
