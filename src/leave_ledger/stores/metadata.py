"""Versioned metadata envelope for persisted WorkSession rows.

Inside the engine metadata is always a typed ``SessionMetadata``. Only the
record store edge converts it to and from the JSON object kept in the
database:

    {
        "version": 1,
        "source": "table",
        "leave": {"kind": "half_day", "half_day": true, ...},
        "calc": {"method": "legal", "daily_value": "300.00", ...},
        ...extra keys...
    }

Null values are pruned on encode. Rows written before the envelope existed
(no ``version`` key) decode as version 1.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from decimal import Decimal
from typing import Any, Mapping

from leave_ledger.calculators.types import CalcMetadata, LeaveMetadata, SessionMetadata
from leave_ledger.errors import MetadataVersionError
from leave_ledger.policy import to_decimal

METADATA_VERSION = 1

_RESERVED_KEYS = {"version", "source", "leave", "calc"}


def _prune(payload: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, Mapping):
            value = _prune(value)
            if not value:
                continue
        result[key] = value
    return result


def encode_metadata(metadata: SessionMetadata | None) -> dict[str, Any]:
    """Encode typed metadata into a JSON-safe, pruned, versioned dict."""
    if metadata is None:
        metadata = SessionMetadata()
    payload: dict[str, Any] = dict(metadata.extra)
    payload.update(
        {
            "version": METADATA_VERSION,
            "source": metadata.source,
            "leave": asdict(metadata.leave) if metadata.leave else None,
            "calc": asdict(metadata.calc) if metadata.calc else None,
        }
    )
    return _prune(payload)


def _known(cls: type, raw: Mapping[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in raw.items() if key in names}


def decode_metadata(raw: Any) -> SessionMetadata:
    """Decode a stored envelope (dict or JSON string) into SessionMetadata.

    Raises:
        MetadataVersionError: If the envelope was written by a newer format.
    """
    if raw is None or raw == "":
        return SessionMetadata()
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, Mapping):
        raise MetadataVersionError(raw)

    version = raw.get("version", METADATA_VERSION)
    if not isinstance(version, int) or version < 1 or version > METADATA_VERSION:
        raise MetadataVersionError(version)

    leave = None
    if isinstance(raw.get("leave"), Mapping):
        leave = LeaveMetadata(**_known(LeaveMetadata, raw["leave"]))

    calc = None
    if isinstance(raw.get("calc"), Mapping):
        values = _known(CalcMetadata, raw["calc"])
        if "daily_value" in values:
            values["daily_value"] = to_decimal(values["daily_value"])
        calc = CalcMetadata(**values)

    source = raw.get("source")
    return SessionMetadata(
        source=source if isinstance(source, str) else None,
        leave=leave,
        calc=calc,
        extra={key: value for key, value in raw.items() if key not in _RESERVED_KEYS},
    )
