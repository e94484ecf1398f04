"""
Go duration strings <-> timedelta.

cert-manager stores `duration` / `renewBefore` as metav1.Duration, which the
API server renders in Go's time.Duration format ("1h0m0s", "30m0s", "45s").
Emitting the same rendering keeps a re-applied spec byte-identical to the
stored one.
"""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_MICROSECONDS = {
    "h": 3_600_000_000,
    "m": 60_000_000,
    "s": 1_000_000,
    "ms": 1_000,
    "us": 1,
    "µs": 1,
    "ns": 0.001,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(h|ms|m|s|us|µs|ns)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go duration string ("1h", "90m", "1h30m", "2.5s") into a timedelta.

    Raises ValueError on anything Go's time.ParseDuration would reject.
    """
    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    position = 0
    micros = 0.0
    for match in _COMPONENT.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration {value!r}")
        micros += float(match.group(1)) * _UNIT_MICROSECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(microseconds=sign * round(micros))


def format_duration(value: timedelta) -> str:
    """Render a timedelta the way Go's time.Duration.String() does."""
    micros = value // timedelta(microseconds=1)
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros == 0:
        return "0s"
    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{micros / 1_000:g}ms"

    whole_seconds, fraction = divmod(micros, 1_000_000)
    hours, remainder = divmod(whole_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    second_text = str(seconds)
    if fraction:
        second_text += "." + f"{fraction:06d}".rstrip("0")

    if hours:
        return f"{sign}{hours}h{minutes}m{second_text}s"
    if minutes:
        return f"{sign}{minutes}m{second_text}s"
    return f"{sign}{second_text}s"
