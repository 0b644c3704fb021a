"""
Feature Contracts - Document Codec

Reads statistics and schema documents, and writes schemas and anomaly
reports, as JSON or YAML text.

Usage:
    stats = load_statistics(Path("stats.json").read_text())
    schema = load_schema(Path("schema.yaml").read_bytes(), fmt="yaml")

    text = dump_anomalies(report, fmt="json")
"""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

from feature_contracts.validation.anomalies import AnomaliesReport
from feature_contracts.validation.errors import ParseError, SerializationError
from feature_contracts.validation.schema import Schema
from feature_contracts.validation.statistics import DatasetStatistics

logger = logging.getLogger(__name__)

FORMATS = ("json", "yaml")


# =============================================================================
# Decoding
# =============================================================================


def _decode(document: str | bytes, fmt: str | None) -> Any:
    """
    Parse JSON or YAML text into plain Python data.

    With no explicit format, text starting with "{" or "[" is read as JSON
    and anything else as YAML.
    """
    if isinstance(document, bytes):
        try:
            document = document.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Document is not valid UTF-8: {e}") from e
    if not isinstance(document, str):
        raise ParseError(f"Expected document text, got {type(document).__name__}")
    if not document.strip():
        raise ParseError("Document is empty")

    if fmt is None:
        fmt = "json" if document.lstrip()[:1] in ("{", "[") else "yaml"
    if fmt not in FORMATS:
        raise ParseError(f"Unknown document format {fmt!r}, expected one of {FORMATS}")

    logger.debug(f"Decoding {fmt} document", extra={"format": fmt, "length": len(document)})
    try:
        if fmt == "json":
            return json.loads(document)
        return yaml.safe_load(document)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON document: {e}") from e
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML document: {e}") from e


def load_statistics(document: str | bytes, fmt: str | None = None) -> DatasetStatistics:
    """
    Parse a statistics document.

    Raises:
        ParseError: If the text cannot be decoded or the record is malformed
    """
    return DatasetStatistics.from_dict(_decode(document, fmt))


def load_schema(document: str | bytes, fmt: str | None = None) -> Schema:
    """
    Parse a schema document.

    Raises:
        ParseError: If the text cannot be decoded or the schema is malformed
    """
    return Schema.from_dict(_decode(document, fmt))


# =============================================================================
# Encoding
# =============================================================================


def _encode(data: Any, fmt: str, indent: int | None) -> str:
    if fmt == "json":
        try:
            return json.dumps(data, indent=indent, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot encode document as JSON: {e}") from e
    if fmt == "yaml":
        try:
            return yaml.safe_dump(data, sort_keys=False, indent=indent or 2)
        except yaml.YAMLError as e:
            raise SerializationError(f"Cannot encode document as YAML: {e}") from e
    raise SerializationError(f"Unknown document format {fmt!r}, expected one of {FORMATS}")


def dump_statistics(statistics: DatasetStatistics, fmt: str = "json", indent: int | None = 2) -> str:
    return _encode(statistics.to_dict(), fmt, indent)


def dump_schema(schema: Schema, fmt: str = "json", indent: int | None = 2) -> str:
    """
    Serialize a schema.

    Raises:
        SerializationError: If the schema holds values the format cannot
            represent (e.g. an infinite bound in JSON)
    """
    return _encode(schema.to_dict(), fmt, indent)


def dump_anomalies(report: AnomaliesReport, fmt: str = "json", indent: int | None = 2) -> str:
    """
    Serialize an anomalies report.

    Raises:
        SerializationError: If the report cannot be encoded
    """
    return _encode(report.to_dict(), fmt, indent)
