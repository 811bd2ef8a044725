"""Strict structural decoding of declarative job text into ``Configuration`` values."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, NoReturn

import yaml

from tasker.config.schema import NAMESPACE
from tasker.errors import SchemaError
from tasker.jobspec.model import (
    ALIVE_CONDITION_KEYS,
    CALENDAR_INTERVAL_KEYS,
    OPTION_TYPES,
    RESOURCE_LIMIT_KEYS,
    AliveCondition,
    CalendarInterval,
    Config,
    Configuration,
    OptionKind,
    ResourceLimit,
    qualify_label,
)

_DOCUMENT_KEYS = {"Label", "Program", "Configuration"}
_OPTION_KEYS = frozenset(kind.value for kind in OptionKind)


def parse(text: str, *, namespace: str = NAMESPACE) -> Configuration:
    """Parse a declarative document; any unknown key or shape mismatch is fatal."""

    return decode_document(_load_yaml(text, "document"), namespace=namespace)


def parse_option(text: str) -> Config:
    """Parse a single-key option document such as ``RunAtLoad: true``."""

    payload = _load_yaml(text, "option")
    return decode_entry(payload, "option")


def decode_document(payload: object, *, namespace: str = NAMESPACE) -> Configuration:
    document = _expect_object(payload, "<root>", required=_DOCUMENT_KEYS)
    label = _as_str(document["Label"], "Label")
    program = _as_str(document["Program"], "Program")
    entries = _as_sequence(document["Configuration"], "Configuration")
    options = tuple(
        decode_entry(entry, f"Configuration[{index}]") for index, entry in enumerate(entries)
    )
    return Configuration(
        label=qualify_label(label, namespace), program=program, options=options
    )


def decode_entry(entry: object, path: str) -> Config:
    """Decode one ``{Kind: value}`` mapping."""

    if not isinstance(entry, Mapping):
        _fail(path, f"expected single-key object, got {type(entry).__name__}")
    if len(entry) != 1:
        _fail(path, f"expected exactly one option key, got {len(entry)}")
    ((key, value),) = entry.items()
    return decode_option(key, value, path)


def decode_option(key: object, value: object, path: str) -> Config:
    """Decode the payload of option ``key``; the key must name an ``OptionKind``."""

    if not isinstance(key, str):
        _fail(path, f"option key must be a string, got {type(key).__name__}")
    if key not in _OPTION_KEYS:
        _fail(path, f"unknown option {key!r}")
    kind = OptionKind(key)
    where = f"{path}.{kind.value}"
    option_type: Any = OPTION_TYPES[kind]

    match kind:
        case OptionKind.PROGRAM_ARGUMENTS:
            items = _as_sequence(value, where)
            return option_type(
                tuple(_as_str(item, f"{where}[{index}]") for index, item in enumerate(items))
            )
        case OptionKind.ENVIRONMENT_VARIABLES:
            return option_type(_as_str_map(value, where))
        case OptionKind.KEEP_ALIVE:
            return option_type(_as_alive_condition(value, where))
        case OptionKind.RUN_AT_LOAD:
            return option_type(_as_bool(value, where))
        case OptionKind.EXIT_TIME_OUT | OptionKind.START_INTERVAL:
            return option_type(_as_int(value, where))
        case OptionKind.START_CALENDAR_INTERVAL:
            items = _as_sequence(value, where)
            return option_type(
                tuple(
                    _as_calendar_interval(item, f"{where}[{index}]")
                    for index, item in enumerate(items)
                )
            )
        case OptionKind.SOFT_RESOURCE_LIMITS | OptionKind.HARD_RESOURCE_LIMITS:
            return option_type(_as_resource_limit(value, where))
        case _:
            return option_type(_as_str(value, where))


def _load_yaml(text: str, what: str) -> object:
    if not isinstance(text, str):
        _fail(what, f"expected text, got {type(text).__name__}")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SchemaError(f"{what}: invalid YAML: {exc}") from exc


def _fail(path: str, message: str) -> NoReturn:
    raise SchemaError(f"{path}: {message}")


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str) -> str:
    # YAML reads `TOKEN: 12345678` as an int; strings accept plain numbers.
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    _fail(path, f"expected string, got {type(value).__name__}")


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    return value


def _as_optional_int(value: object, path: str) -> int | None:
    if value is None:
        return None
    return _as_int(value, path)


def _as_optional_bool(value: object, path: str) -> bool | None:
    if value is None:
        return None
    return _as_bool(value, path)


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_map(value: object, path: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, str] = {}
    for key, item in value.items():
        parsed_key = _as_str(key, f"{path}.<key>")
        parsed[parsed_key] = _as_str(item, f"{path}.{parsed_key}")
    return parsed


def _as_bool_map(value: object, path: str) -> dict[str, bool]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, bool] = {}
    for key, item in value.items():
        parsed_key = _as_str(key, f"{path}.<key>")
        parsed[parsed_key] = _as_bool(item, f"{path}.{parsed_key}")
    return parsed


def _as_alive_condition(value: object, path: str) -> AliveCondition:
    fields = _expect_object(
        value, path, required=set(), optional={key for _, key in ALIVE_CONDITION_KEYS}
    )
    other_jobs = fields.get("OtherJobEnabled")
    return AliveCondition(
        successful_exit=_as_optional_bool(fields.get("SuccessfulExit"), f"{path}.SuccessfulExit"),
        other_job_enabled=(
            None if other_jobs is None else _as_bool_map(other_jobs, f"{path}.OtherJobEnabled")
        ),
        crashed=_as_optional_bool(fields.get("Crashed"), f"{path}.Crashed"),
    )


def _as_calendar_interval(value: object, path: str) -> CalendarInterval:
    fields = _expect_object(
        value, path, required=set(), optional={key for _, key in CALENDAR_INTERVAL_KEYS}
    )
    return CalendarInterval(
        **{
            attribute: _as_optional_int(fields.get(key), f"{path}.{key}")
            for attribute, key in CALENDAR_INTERVAL_KEYS
        }
    )


def _as_resource_limit(value: object, path: str) -> ResourceLimit:
    fields = _expect_object(
        value, path, required=set(), optional={key for _, key in RESOURCE_LIMIT_KEYS}
    )
    return ResourceLimit(
        **{
            attribute: _as_optional_int(fields.get(key), f"{path}.{key}")
            for attribute, key in RESOURCE_LIMIT_KEYS
        }
    )


__all__ = ["decode_document", "decode_entry", "decode_option", "parse", "parse_option"]
