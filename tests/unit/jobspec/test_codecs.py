"""Declarative (YAML) and descriptor (plist) encoders."""

from __future__ import annotations

import plistlib

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tasker.errors import SchemaError
from tasker.jobspec import (
    AliveCondition,
    CalendarInterval,
    Configuration,
    EnvironmentVariables,
    ExitTimeOut,
    GroupName,
    HardResourceLimits,
    KeepAlive,
    ProgramArguments,
    ResourceLimit,
    RootDirectory,
    RunAtLoad,
    SoftResourceLimits,
    StandardErrorPath,
    StandardInPath,
    StandardOutPath,
    StartCalendarInterval,
    StartInterval,
    UserName,
    WorkingDirectory,
    from_descriptor,
    parse,
    to_declarative,
    to_descriptor,
)
from tasker.jobspec.descriptor import PLIST_FOOTER, PLIST_HEADER

_word = st.text(alphabet="abcdefghijklmnopqrstuvwxyzABCDEF0123456789_-./", min_size=1, max_size=12)
_path = _word.map(lambda item: f"/{item}")
_small = st.integers(min_value=0, max_value=10_000)
_maybe_small = st.none() | _small

_options = st.one_of(
    st.lists(_word, max_size=4).map(lambda items: ProgramArguments(tuple(items))),
    st.dictionaries(_word, _word, max_size=3).map(EnvironmentVariables),
    st.builds(
        AliveCondition,
        successful_exit=st.none() | st.booleans(),
        other_job_enabled=st.none() | st.dictionaries(_word, st.booleans(), max_size=2),
        crashed=st.none() | st.booleans(),
    ).map(KeepAlive),
    st.booleans().map(RunAtLoad),
    _path.map(WorkingDirectory),
    _word.map(UserName),
    _word.map(GroupName),
    _path.map(RootDirectory),
    _small.map(ExitTimeOut),
    _small.map(StartInterval),
    st.lists(
        st.builds(
            CalendarInterval,
            minute=_maybe_small,
            hour=_maybe_small,
            day=_maybe_small,
            weekday=_maybe_small,
            month=_maybe_small,
        ),
        max_size=3,
    ).map(lambda items: StartCalendarInterval(tuple(items))),
    _path.map(StandardInPath),
    _path.map(StandardOutPath),
    _path.map(StandardErrorPath),
    st.builds(ResourceLimit, cpu=_maybe_small, stack=_maybe_small).map(SoftResourceLimits),
    st.builds(ResourceLimit, number_of_files=_maybe_small).map(HardResourceLimits),
)


@st.composite
def _configurations(draw: st.DrawFn) -> Configuration:
    config = Configuration(f"com.tasker.tasks.{draw(_word.filter(str.isalnum))}", draw(_path))
    for option in draw(st.lists(_options, max_size=8)):
        config = config.upsert(option)
    return config


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(config=_configurations())
def test_declarative_round_trip(config: Configuration) -> None:
    assert parse(to_declarative(config)) == config


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(config=_configurations())
def test_descriptor_round_trip_and_plist_compatibility(config: Configuration) -> None:
    rendered = to_descriptor(config)

    assert from_descriptor(rendered) == config
    assert plistlib.loads(rendered.encode("utf-8"))["Label"] == config.label


def test_declarative_layout() -> None:
    config = Configuration(
        "com.tasker.tasks.demo",
        "/usr/bin/python3",
        (
            ProgramArguments(("python3", "main.py")),
            EnvironmentVariables({"b": "2", "a": "1"}),
            RunAtLoad(True),
        ),
    )

    assert to_declarative(config) == (
        "---\n"
        "Label: demo\n"
        "Program: /usr/bin/python3\n"
        "Configuration:\n"
        "  - ProgramArguments:\n"
        "      - python3\n"
        "      - main.py\n"
        "  - EnvironmentVariables:\n"
        "      a: '1'\n"
        "      b: '2'\n"
        "  - RunAtLoad: true\n"
    )


def test_descriptor_is_deterministic_and_ordered() -> None:
    config = Configuration(
        "com.tasker.tasks.demo",
        "/usr/bin/python3",
        (
            RunAtLoad(False),
            EnvironmentVariables({"b": "<2>", "a": "1"}),
            StartInterval(60),
            ProgramArguments(()),
        ),
    )

    rendered = to_descriptor(config)

    assert rendered == to_descriptor(config)
    assert rendered.startswith(PLIST_HEADER)
    assert rendered.endswith(PLIST_FOOTER)
    body = rendered[len(PLIST_HEADER) : -len(PLIST_FOOTER)]
    assert body == (
        "<dict>\n"
        "\t<key>Label</key>\n"
        "\t<string>com.tasker.tasks.demo</string>\n"
        "\t<key>Program</key>\n"
        "\t<string>/usr/bin/python3</string>\n"
        "\t<key>RunAtLoad</key>\n"
        "\t<false/>\n"
        "\t<key>EnvironmentVariables</key>\n"
        "\t<dict>\n"
        "\t\t<key>a</key>\n"
        "\t\t<string>1</string>\n"
        "\t\t<key>b</key>\n"
        "\t\t<string>&lt;2&gt;</string>\n"
        "\t</dict>\n"
        "\t<key>StartInterval</key>\n"
        "\t<integer>60</integer>\n"
        "\t<key>ProgramArguments</key>\n"
        "\t<array/>\n"
        "</dict>\n"
    )


def test_from_descriptor_rejects_garbage() -> None:
    with pytest.raises(SchemaError, match="invalid property list"):
        from_descriptor("<plist><dict><key>x</key>")

    missing_program = plistlib.dumps({"Label": "x"}).decode("utf-8")
    with pytest.raises(SchemaError, match="missing required fields: \\['Program'\\]"):
        from_descriptor(missing_program)

    unknown = plistlib.dumps({"Label": "x", "Program": "/bin/sh", "Disabled": True})
    with pytest.raises(SchemaError, match="unknown option 'Disabled'"):
        from_descriptor(unknown)
