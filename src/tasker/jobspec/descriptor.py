"""
launchd-tasker — native job descriptor (property list) codec.

Purpose
- Emit the launchd property-list XML for a ``Configuration`` directly from the typed
  model, and read a descriptor back into a ``Configuration``.

Functional requirements
- Output is deterministic: ``Label``, ``Program``, then one top-level key per option in
  option order; user maps are key-sorted; tab indentation; trailing newline.
- Booleans render as ``<true/>``/``<false/>`` and integers as ``<integer>``.
- Decoding routes every option through the same strict decoder as the YAML parser.
"""

from __future__ import annotations

import plistlib
from collections.abc import Mapping, Sequence
from typing import Final
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

from tasker.config.schema import NAMESPACE
from tasker.errors import SchemaError
from tasker.jobspec.declarative import encode_option
from tasker.jobspec.model import Configuration, qualify_label
from tasker.jobspec.parser import decode_option

PLIST_HEADER: Final[str] = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" '
    '"http://www.apple.com/DTDs/PropertyList-1.0.dtd">\n'
    '<plist version="1.0">\n'
)
PLIST_FOOTER: Final[str] = "</plist>\n"


class _PlistWriter:
    """Accumulates indented plist elements."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def render(self) -> str:
        return PLIST_HEADER + "".join(f"{line}\n" for line in self._lines) + PLIST_FOOTER

    def emit(self, value: object, depth: int) -> None:
        pad = "\t" * depth
        if isinstance(value, bool):
            self._lines.append(f"{pad}<{'true' if value else 'false'}/>")
        elif isinstance(value, int):
            self._lines.append(f"{pad}<integer>{value}</integer>")
        elif isinstance(value, str):
            self._lines.append(f"{pad}<string>{escape(value)}</string>")
        elif isinstance(value, Mapping):
            self.emit_dict(value, depth)
        elif isinstance(value, Sequence):
            if not value:
                self._lines.append(f"{pad}<array/>")
                return
            self._lines.append(f"{pad}<array>")
            for item in value:
                self.emit(item, depth + 1)
            self._lines.append(f"{pad}</array>")
        else:
            raise TypeError(f"cannot encode {type(value).__name__} in a property list")

    def emit_dict(self, value: Mapping[str, object], depth: int) -> None:
        pad = "\t" * depth
        if not value:
            self._lines.append(f"{pad}<dict/>")
            return
        self._lines.append(f"{pad}<dict>")
        for key, item in value.items():
            self._lines.append(f"{pad}\t<key>{escape(key)}</key>")
            self.emit(item, depth + 1)
        self._lines.append(f"{pad}</dict>")


def to_descriptor(config: Configuration) -> str:
    """Render the launchd property list for ``config``."""

    top: dict[str, object] = {"Label": config.label, "Program": config.program}
    for option in config.options:
        top[option.kind.value] = encode_option(option)
    writer = _PlistWriter()
    writer.emit_dict(top, 0)
    return writer.render()


def from_descriptor(text: str | bytes, *, namespace: str = NAMESPACE) -> Configuration:
    """Decode a property list produced by ``to_descriptor`` (or by hand)."""

    raw = text.encode("utf-8") if isinstance(text, str) else text
    try:
        payload = plistlib.loads(raw, fmt=plistlib.FMT_XML)
    except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
        raise SchemaError(f"descriptor: invalid property list: {exc}") from exc
    if not isinstance(payload, dict):
        raise SchemaError(f"descriptor: expected dict root, got {type(payload).__name__}")

    missing = sorted(key for key in ("Label", "Program") if key not in payload)
    if missing:
        raise SchemaError(f"descriptor: missing required fields: {missing}")
    label = payload["Label"]
    program = payload["Program"]
    if not isinstance(label, str) or not isinstance(program, str):
        raise SchemaError("descriptor: Label and Program must be strings")

    options = tuple(
        decode_option(key, value, "descriptor")
        for key, value in payload.items()
        if key not in ("Label", "Program")
    )
    return Configuration(label=qualify_label(label, namespace), program=program, options=options)


__all__ = ["PLIST_FOOTER", "PLIST_HEADER", "from_descriptor", "to_descriptor"]
