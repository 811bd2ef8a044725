"""Canonical declarative (YAML) rendering of a ``Configuration``."""

from __future__ import annotations

from typing import Any

import yaml

from tasker.config.schema import NAMESPACE
from tasker.jobspec.model import (
    ALIVE_CONDITION_KEYS,
    CALENDAR_INTERVAL_KEYS,
    RESOURCE_LIMIT_KEYS,
    AliveCondition,
    CalendarInterval,
    Config,
    Configuration,
    EnvironmentVariables,
    HardResourceLimits,
    KeepAlive,
    ProgramArguments,
    ResourceLimit,
    SoftResourceLimits,
    StartCalendarInterval,
    strip_namespace,
)


class _IndentedDumper(yaml.SafeDumper):
    """SafeDumper that indents block sequences under their parent key."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def to_declarative(config: Configuration, *, namespace: str = NAMESPACE) -> str:
    """Render ``config`` as YAML with a stable key order and the namespace stripped."""

    document = {
        "Label": strip_namespace(config.label, namespace),
        "Program": config.program,
        "Configuration": [{option.kind.value: encode_option(option)} for option in config.options],
    }
    return yaml.dump(
        document,
        Dumper=_IndentedDumper,
        sort_keys=False,
        default_flow_style=False,
        explicit_start=True,
        allow_unicode=True,
    )


def encode_option(option: Config) -> Any:
    """Plain-data payload for ``option``; user maps are key-sorted."""

    match option:
        case ProgramArguments():
            return list(option.value)
        case EnvironmentVariables():
            return _sorted_map(option.value)
        case KeepAlive():
            return encode_alive_condition(option.value)
        case StartCalendarInterval():
            return [encode_calendar_interval(item) for item in option.value]
        case SoftResourceLimits() | HardResourceLimits():
            return encode_resource_limit(option.value)
        case _:
            return option.value


def encode_alive_condition(condition: AliveCondition) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for attribute, key in ALIVE_CONDITION_KEYS:
        value = getattr(condition, attribute)
        if value is None:
            continue
        payload[key] = _sorted_map(value) if isinstance(value, dict) else value
    return payload


def encode_calendar_interval(interval: CalendarInterval) -> dict[str, int]:
    return _present_fields(interval, CALENDAR_INTERVAL_KEYS)


def encode_resource_limit(limit: ResourceLimit) -> dict[str, int]:
    return _present_fields(limit, RESOURCE_LIMIT_KEYS)


def _present_fields(value: object, keys: tuple[tuple[str, str], ...]) -> dict[str, Any]:
    return {
        key: getattr(value, attribute)
        for attribute, key in keys
        if getattr(value, attribute) is not None
    }


def _sorted_map(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: mapping[key] for key in sorted(mapping)}


__all__ = [
    "encode_alive_condition",
    "encode_calendar_interval",
    "encode_option",
    "encode_resource_limit",
    "to_declarative",
]
