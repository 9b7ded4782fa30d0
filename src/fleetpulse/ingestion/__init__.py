"""Ingestion layer.

Decoding, schema matching, identity resolution and normalization of
broker messages into canonical location and fault records.
"""

__all__: list[str] = []
