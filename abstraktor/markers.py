#!/usr/bin/env python3
"""
Marker comments understood by the instrumentation pass.

Source under test is annotated with comments such as::

    // ABSTRAKTOR_CONST: Leader
    // ABSTRAKTOR_BLOCK_EVENT: msg->2->0
    // ABSTRAKTOR_FUNC: r->19->4->5, r2->15

This module classifies a single line into raw marker matches and parses
the variable/trace payloads they carry.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

U32_MAX = 4294967295

# name -> ordered trace, e.g. {"r": [19, 4, 5], "r2": [15]}
VariableTraces = dict[str, list[int]]

# Steps are \w*, not \d+, so malformed ones reach parse_variable_traces.
_TOKEN = r"\w+(?:->\w*)*"


class TraceParseError(ValueError):
    """Raised when a marker payload has a step that is not a u32."""

    def __init__(self, payload: str, reason: str, path: str | None = None, line: int | None = None):
        self.payload = payload
        self.reason = reason
        self.path = path
        self.line = line
        message = f"Invalid trace in {payload!r}: {reason}"
        if path is not None:
            message = f"{path}:{line}: {message}"
        super().__init__(message)


class MarkerKind(str, Enum):
    CONST = "const"
    BLOCK = "block"
    FUNCTION = "function"


class ConstMarker(BaseModel):
    """Tags the statement that produces a named constant."""

    kind: Literal["const"] = "const"
    name: str


class BlockMarker(BaseModel):
    """Tags a block of code as an event boundary."""

    kind: Literal["block"] = "block"
    vars: VariableTraces


class FunctionMarker(BaseModel):
    """Tags a function-level grouping of one or more variables."""

    kind: Literal["function"] = "function"
    vars: VariableTraces


Marker = Annotated[ConstMarker | BlockMarker | FunctionMarker, Field(discriminator="kind")]


@dataclass(frozen=True)
class MarkerMatch:
    """A marker found on a line, with its payload still unparsed."""

    kind: MarkerKind
    payload: str | None


def _parse_step(step: str, payload: str) -> int:
    if not step:
        raise TraceParseError(payload, "empty step after '->'")
    if not step.isascii() or not step.isdigit():
        raise TraceParseError(payload, f"step {step!r} is not a number")
    value = int(step)
    if value > U32_MAX:
        raise TraceParseError(payload, f"step {step} does not fit in 32 bits")
    return value


_VARIABLE_RE = re.compile(r"(\w+)((?:->\w*)*)")


def parse_variable_traces(payload: str) -> VariableTraces:
    """Parse ``name(->number)*`` tokens into a name -> trace mapping.

    Tokens may be separated by commas. A name without steps maps to an empty
    list; a repeated name keeps its last trace.
    """
    traces: VariableTraces = {}
    for match in _VARIABLE_RE.finditer(payload):
        name, suffix = match.group(1), match.group(2)
        steps = suffix.split("->")[1:]
        traces[name] = [_parse_step(step, payload) for step in steps]
    return traces


class MarkerClassifier:
    """Finds marker comments on a single line of source."""

    def __init__(self):
        self.const_regex = re.compile(r"ABSTRAKTOR_CONST: (\w+)")
        self.block_regex = re.compile(rf"ABSTRAKTOR_BLOCK_EVENT(?:[:\s]*({_TOKEN}))?")
        self.function_regex = re.compile(
            rf"ABSTRAKTOR_FUNC:\s*({_TOKEN}(?:\s*,\s*{_TOKEN})*)"
        )

    def classify(self, line: str) -> list[MarkerMatch]:
        """Return every marker kind present on the line.

        Kinds are not exclusive: a line carrying both a constant and a block
        marker yields one match for each.
        """
        matches = []

        const_match = self.const_regex.search(line)
        if const_match:
            matches.append(MarkerMatch(MarkerKind.CONST, const_match.group(1)))

        block_match = self.block_regex.search(line)
        if block_match:
            matches.append(MarkerMatch(MarkerKind.BLOCK, block_match.group(1)))

        function_match = self.function_regex.search(line)
        if function_match:
            matches.append(MarkerMatch(MarkerKind.FUNCTION, function_match.group(1)))

        return matches

    def to_marker(self, match: MarkerMatch) -> ConstMarker | BlockMarker | FunctionMarker:
        """Parse a raw match into its marker variant.

        Raises TraceParseError if the payload holds a malformed trace, and
        ValueError if a constant or function match has no payload.
        """
        if match.kind is not MarkerKind.BLOCK and match.payload is None:
            raise ValueError(f"{match.kind.value} marker has no payload")

        if match.kind is MarkerKind.CONST:
            return ConstMarker(name=match.payload)

        if match.kind is MarkerKind.BLOCK:
            # A bare block marker carries the "no variable" sentinel.
            if match.payload is None:
                return BlockMarker(vars={"": []})
            return BlockMarker(vars=parse_variable_traces(match.payload))

        return FunctionMarker(vars=parse_variable_traces(match.payload))
