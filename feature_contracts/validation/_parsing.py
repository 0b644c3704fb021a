"""Helpers for reading plain-dict documents into records."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from feature_contracts.validation.errors import ParseError


def check_keys(data: Any, allowed: Iterable[str], where: str) -> Mapping[str, Any]:
    """Ensure `data` is a mapping whose keys are all in `allowed`."""
    if not isinstance(data, Mapping):
        raise ParseError(f"{where}: expected a mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ParseError(f"{where}: unknown field(s) {unknown}")
    return data


def require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ParseError(f"{where}: missing required field '{key}'")
    return data[key]


def as_number(value: Any, where: str, allow_none: bool = False) -> float | None:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"{where}: expected a number, got {value!r}")
    if math.isnan(value):
        raise ParseError(f"{where}: NaN is not allowed")
    return value


def as_count(value: Any, where: str) -> float:
    number = as_number(value, where)
    if number < 0:  # type: ignore[operator]
        raise ParseError(f"{where}: expected a non-negative count, got {value!r}")
    return number  # type: ignore[return-value]


def as_int(
    value: Any, where: str, allow_none: bool = False, non_negative: bool = True
) -> int | None:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"{where}: expected an integer, got {value!r}")
    if non_negative and value < 0:
        raise ParseError(f"{where}: expected a non-negative integer, got {value!r}")
    return value


def as_str_list(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ParseError(f"{where}: expected a list of strings, got {value!r}")
    return tuple(value)


def as_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise ParseError(f"{where}: expected a list, got {type(value).__name__}")
    return list(value)
