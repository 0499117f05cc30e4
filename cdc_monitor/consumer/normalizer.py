"""
Change normalizer for CDC events.

Maps any CDC payload onto the canonical ChangeRecord. Normalization never
raises: a payload that cannot be fully interpreted degrades to a record with
null / "unknown" fields, so every consumed message still produces output.

Primary keys are read from a column literally named ``id`` in the first row
of ``data`` only. Composite keys and multi-row batches are not represented.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .payload import CDCPayload, RowChangeEvent, UnrecognizedPayload, classify_payload

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Row change types."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: Any) -> "ChangeType":
        """Map an upstream type marker onto a change type."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN


@dataclass(frozen=True)
class ChangeRecord:
    """Canonical representation of one change event."""
    change_type: ChangeType = ChangeType.UNKNOWN
    database: Optional[str] = None
    table: Optional[str] = None
    primary_key: Optional[Dict[str, Any]] = None
    changes: Any = field(default_factory=dict)
    old_data: Optional[Any] = None
    change_timestamp: Optional[Any] = None
    raw_payload: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase mapping written to the change log."""
        return {
            "changeType": self.change_type.value,
            "database": self.database,
            "table": self.table,
            "primaryKey": self.primary_key,
            "changes": self.changes,
            "oldData": self.old_data,
            "changeTimestamp": self.change_timestamp,
            "rawPayload": self.raw_payload,
        }


class ChangeNormalizer:
    """Builds ChangeRecords from CDC payload variants."""

    def normalize(self, payload: Union[CDCPayload, Any]) -> ChangeRecord:
        """
        Normalize a payload into a ChangeRecord.

        Args:
            payload: A payload variant, or an already parsed JSON value

        Returns:
            ChangeRecord, partially filled if extraction failed
        """
        if not isinstance(payload, (RowChangeEvent, UnrecognizedPayload)):
            payload = classify_payload(payload)

        if isinstance(payload, RowChangeEvent):
            return self._normalize_row_change(payload)

        return ChangeRecord(raw_payload=payload.raw)

    def _normalize_row_change(self, event: RowChangeEvent) -> ChangeRecord:
        fields = {"raw_payload": event.raw}

        try:
            fields["change_type"] = ChangeType.from_value(event.type)

            if event.database:
                fields["database"] = event.database

            if event.table:
                fields["table"] = event.table

            if isinstance(event.data, list) and event.data:
                fields["primary_key"] = self._extract_primary_key(event.data[0])
                fields["changes"] = event.data

            if event.old_data:
                fields["old_data"] = event.old_data

            change_timestamp = event.ts or event.timestamp
            if change_timestamp:
                fields["change_timestamp"] = change_timestamp

        except Exception as e:
            logger.error(f"Error processing CDC data structure: {e}")

        return ChangeRecord(**fields)

    @staticmethod
    def _extract_primary_key(first_row: Any) -> Optional[Dict[str, Any]]:
        if isinstance(first_row, dict) and "id" in first_row:
            return {"id": first_row["id"]}
        return None


default_normalizer = ChangeNormalizer()


def normalize(payload: Union[CDCPayload, Any]) -> ChangeRecord:
    """Convenience function to normalize a payload with the default normalizer."""
    return default_normalizer.normalize(payload)
