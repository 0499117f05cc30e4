"""
Structured emitter for normalized changes.

Each change is written as one entry on the change stream logger; the
formatter installed by ``setup_change_logger`` renders it as a single JSON
object per line.
"""

import logging
from typing import Any, Dict, Optional

from ..core.logging import CHANGE_LOGGER_NAME, utc_timestamp
from .normalizer import ChangeRecord
from .payload import MessageMetadata

CHANGE_EVENT = "database_change"


class StructuredEmitter:
    """Writes change records and broker metadata to the change log."""

    def __init__(self, source_tag: str = "database-cdc", logger: Optional[logging.Logger] = None):
        self.source_tag = source_tag
        self.logger = logger or logging.getLogger(CHANGE_LOGGER_NAME)

    def build_entry(self, record: ChangeRecord, metadata: MessageMetadata) -> Dict[str, Any]:
        """Combine wall-clock time, source tag, broker metadata and record fields."""
        entry = {
            "timestamp": utc_timestamp(),
            "source": self.source_tag,
            "topic": metadata.topic,
            "partition": metadata.partition,
            "offset": metadata.offset,
        }
        entry.update(record.to_dict())
        entry["metadata"] = {
            "kafkaTimestamp": metadata.timestamp,
            "messageSize": metadata.size,
        }
        return entry

    def emit(self, record: ChangeRecord, metadata: MessageMetadata) -> None:
        """Write one change entry."""
        self.logger.info(CHANGE_EVENT, extra=self.build_entry(record, metadata))
