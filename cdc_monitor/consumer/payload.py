"""
Raw message decoding for CDC change events.

A message body is UTF-8 JSON. Once parsed it is classified into one of the
payload variants the normalizer understands:

- RowChangeEvent: a JSON object carrying at least one of the row change
  fields (type, database, table, data, old_data, ts, timestamp)
- UnrecognizedPayload: anything else, kept verbatim
"""

import json
import math
from json import JSONDecodeError
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from confluent_kafka import TIMESTAMP_NOT_AVAILABLE

ROW_CHANGE_FIELDS = ("type", "database", "table", "data", "old_data", "ts", "timestamp")


class PayloadParseError(Exception):
    """Raised when a message body is not valid UTF-8 JSON."""
    pass


@dataclass(frozen=True)
class MessageMetadata:
    """Broker metadata of a consumed message."""
    topic: str
    partition: int
    offset: int
    timestamp: Optional[int]
    size: int
    key: Optional[str] = None

    @property
    def position(self) -> str:
        return f"{self.topic}:{self.partition}:{self.offset}"

    @classmethod
    def from_message(cls, message) -> "MessageMetadata":
        """Build metadata from a confluent-kafka Message."""
        value = message.value()
        ts_type, ts_value = message.timestamp()
        key = message.key()
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="replace")

        return cls(
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset(),
            timestamp=None if ts_type == TIMESTAMP_NOT_AVAILABLE else ts_value,
            size=len(value) if value else 0,
            key=key,
        )


@dataclass(frozen=True)
class RowChangeEvent:
    """A row-level change event as published by the CDC feed."""
    raw: Dict[str, Any]
    type: Any = None
    database: Any = None
    table: Any = None
    data: Any = None
    old_data: Any = None
    ts: Any = None
    timestamp: Any = None


@dataclass(frozen=True)
class UnrecognizedPayload:
    """Any parsed value that is not shaped like a row change."""
    raw: Any


CDCPayload = Union[RowChangeEvent, UnrecognizedPayload]


def classify_payload(value: Any) -> CDCPayload:
    """Classify a parsed JSON value into a payload variant."""
    if isinstance(value, dict) and any(name in value for name in ROW_CHANGE_FIELDS):
        return RowChangeEvent(
            raw=value,
            **{name: value.get(name) for name in ROW_CHANGE_FIELDS}
        )
    return UnrecognizedPayload(raw=value)


def _reject_constant(name: str) -> Any:
    raise PayloadParseError(f"Failed to parse message JSON: non-finite number {name}")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise PayloadParseError(f"Failed to parse message JSON: number out of range {text}")
    return value


def decode_message_value(message_value: Union[bytes, str]) -> Any:
    """
    Decode a message body into a JSON value.

    NaN, Infinity and out-of-range floats are rejected so every value can be
    written back as strict JSON.
    """
    try:
        if isinstance(message_value, bytes):
            message_value = message_value.decode("utf-8")
        return json.loads(
            message_value,
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except (UnicodeDecodeError, JSONDecodeError) as e:
        raise PayloadParseError(f"Failed to parse message JSON: {e}") from e


def parse_payload(message_value: Union[bytes, str]) -> CDCPayload:
    """
    Parse and classify a message body.

    Raises:
        PayloadParseError: If the body is not valid UTF-8 JSON
    """
    return classify_payload(decode_message_value(message_value))
