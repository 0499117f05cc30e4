"""
Consumer package for the CDC change monitor.

This package provides:
- Broker connection lifecycle (probe, connect, subscribe, disconnect)
- The message loop with startup retry and per-message failure isolation
- Payload decoding and classification
- Normalization into canonical change records
- Structured emission of change records
"""

from .payload import (
    PayloadParseError,
    MessageMetadata,
    RowChangeEvent,
    UnrecognizedPayload,
    CDCPayload,
    classify_payload,
    parse_payload,
)

from .normalizer import (
    ChangeType,
    ChangeRecord,
    ChangeNormalizer,
    normalize,
)

from .emitter import StructuredEmitter

from .connector import (
    ConnectError,
    BrokerConnector,
)

from .context import ConsumerContext

from .consumer import (
    StartupError,
    ChangeConsumerService,
)

__all__ = [
    # Payloads
    "PayloadParseError",
    "MessageMetadata",
    "RowChangeEvent",
    "UnrecognizedPayload",
    "CDCPayload",
    "classify_payload",
    "parse_payload",

    # Normalization
    "ChangeType",
    "ChangeRecord",
    "ChangeNormalizer",
    "normalize",

    # Emission
    "StructuredEmitter",

    # Connection and loop
    "ConnectError",
    "BrokerConnector",
    "ConsumerContext",
    "StartupError",
    "ChangeConsumerService",
]
