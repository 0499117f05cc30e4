"""
CDC change monitor.

Consumes database change events from a Kafka topic, normalizes them into
canonical change records and writes them as JSON log lines.
"""

__version__ = "1.0.0"
