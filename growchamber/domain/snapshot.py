"""
Raw Snapshot Value Object
=========================
Immutable bag of named readings pushed by an upstream controller.

A snapshot is never merged into another one. Values are stored exactly as
received (coerced to float where numeric); deciding what ``0`` means is left
to the fusion processor, per field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from growchamber.enums.common import TelemetrySource
from growchamber.hardware.sensors.processors.utils import (
    SEQUENCE_KEYS,
    TIMESTAMP_KEYS,
    coerce_float,
    coerce_float_list,
    coerce_int,
)
from growchamber.utils.time import coerce_datetime, utc_now

# Device clocks that never synced report 1970 dates
_MIN_DEVICE_YEAR = 2000


@dataclass(frozen=True)
class RawSnapshot:
    """
    One push from an upstream source.

    Attributes:
        source: Feed the snapshot came from
        received_at: When this process received it (UTC)
        values: Scalar readings; ``None`` for non-numeric scalars
        arrays: Positional readings such as ``soil`` and ``heights``
        attributes: Non-numeric fields (status strings, flags)
        sequence: Controller sequence counter, when the firmware sends one
        device_timestamp: Controller wall-clock time, when plausible
    """

    source: TelemetrySource
    received_at: datetime
    values: Mapping[str, Optional[float]] = field(default_factory=lambda: MappingProxyType({}))
    arrays: Mapping[str, tuple[Optional[float], ...]] = field(default_factory=lambda: MappingProxyType({}))
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    sequence: int | None = None
    device_timestamp: datetime | None = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        source: TelemetrySource = TelemetrySource.CONTROLLER,
        received_at: datetime | None = None,
    ) -> "RawSnapshot":
        """Build a snapshot from a decoded JSON payload."""
        if not isinstance(payload, Mapping):
            raise TypeError(f"Snapshot payload must be a mapping, got {type(payload).__name__}")

        values: dict[str, Optional[float]] = {}
        arrays: dict[str, tuple[Optional[float], ...]] = {}
        attributes: dict[str, Any] = {}
        sequence = None
        device_ts = None

        for key, raw in payload.items():
            key = str(key)
            if key in SEQUENCE_KEYS:
                sequence = coerce_int(raw)
                continue
            if key in TIMESTAMP_KEYS:
                device_ts = coerce_datetime(raw)
                continue
            if isinstance(raw, (list, tuple)):
                arrays[key] = coerce_float_list(raw)
            elif isinstance(raw, str):
                numeric = coerce_float(raw)
                if numeric is None:
                    attributes[key] = raw
                else:
                    values[key] = numeric
            elif isinstance(raw, (bool, Mapping)):
                attributes[key] = raw
            else:
                values[key] = coerce_float(raw)

        if device_ts is not None and device_ts.year < _MIN_DEVICE_YEAR:
            device_ts = None

        return cls(
            source=source,
            received_at=received_at or utc_now(),
            values=MappingProxyType(values),
            arrays=MappingProxyType(arrays),
            attributes=MappingProxyType(attributes),
            sequence=sequence,
            device_timestamp=device_ts,
        )

    def has(self, key: str) -> bool:
        """True when the snapshot carries ``key`` at all (even as null)."""
        return key in self.values or key in self.arrays

    def has_any(self, *keys: str) -> bool:
        return any(self.has(k) for k in keys)

    def value(self, key: str) -> Optional[float]:
        return self.values.get(key)

    def array(self, key: str) -> tuple[Optional[float], ...]:
        return self.arrays.get(key, ())

    @property
    def timestamp(self) -> datetime:
        """Best available ordering timestamp."""
        return self.device_timestamp or self.received_at

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.values)
        data.update({k: list(v) for k, v in self.arrays.items()})
        data.update(self.attributes)
        return {
            "source": self.source.value,
            "received_at": self.received_at.isoformat(),
            "sequence": self.sequence,
            "device_timestamp": self.device_timestamp.isoformat() if self.device_timestamp else None,
            "data": data,
        }
