#!/usr/bin/env python3
"""
Instrumentation target scanning.

Resolves every marker comment in a source file to the line of the next
statement after it and collects the results into per-file target tables,
which the LLVM pass reads from the file named by ``TARGETS_FILE``.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from abstraktor.markers import (
    BlockMarker,
    ConstMarker,
    FunctionMarker,
    Marker,
    MarkerClassifier,
    MarkerKind,
    TraceParseError,
    VariableTraces,
)

logger = logging.getLogger(__name__)


class InstrumentationTargets(BaseModel):
    """Target table for one file, keyed by resolved target line."""

    model_config = ConfigDict(frozen=True)

    path: str
    targets_const: dict[int, str] = Field(default_factory=dict)
    targets_block: dict[int, VariableTraces] = Field(default_factory=dict)
    targets_function: dict[int, VariableTraces] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.targets_const or self.targets_block or self.targets_function)


class ResolvedMarker(BaseModel):
    """A marker together with the line it sits on and the line it targets."""

    line: int
    target_line: int
    marker: Marker


class ScanDiagnostic(BaseModel):
    """A marker that was skipped because its payload could not be parsed."""

    path: str
    line: int
    kind: MarkerKind
    message: str


class FileScanResult(BaseModel):
    targets: InstrumentationTargets
    diagnostics: list[ScanDiagnostic] = Field(default_factory=list)


class TargetsReport(BaseModel):
    """Scan output for a batch of files, in input order."""

    targets: list[InstrumentationTargets]
    diagnostics: list[ScanDiagnostic] = Field(default_factory=list)


def split_lines(content: str) -> list[str]:
    """Split on newlines the way a compiler counts lines.

    Unlike str.splitlines, form feeds and other exotic separators do not
    start a new line. A trailing newline does not add an empty line.
    """
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class BlockBoundaryLocator:
    """Finds the first code-start line at or after a given index."""

    def __init__(self):
        self.block_start_regex = re.compile(r"^(?:[A-Za-z]|\})")

    def is_block_start(self, line: str) -> bool:
        return self.block_start_regex.match(line.lstrip()) is not None

    def find_next_block_start(self, lines: list[str], start_index: int) -> int | None:
        """Return the 1-indexed number of the next code-start line, or None."""
        for index in range(start_index, len(lines)):
            if self.is_block_start(lines[index]):
                return index + 1
        return None


class Instrumentor:
    """Scans source files for markers and builds their target tables.

    With ``strict=True`` a malformed trace aborts the scan by raising
    TraceParseError; otherwise the marker is skipped and reported as a
    ScanDiagnostic.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.classifier = MarkerClassifier()
        self.locator = BlockBoundaryLocator()

    def iter_markers(
        self, lines: list[str], path: str, diagnostics: list[ScanDiagnostic]
    ) -> Iterator[ResolvedMarker]:
        """Yield each resolvable marker in line order.

        Markers with no code-start line after them are dropped silently.
        """
        for index, line in enumerate(lines):
            line_num = index + 1
            for match in self.classifier.classify(line):
                try:
                    marker = self.classifier.to_marker(match)
                except TraceParseError as e:
                    if self.strict:
                        raise TraceParseError(e.payload, e.reason, path=path, line=line_num) from e
                    logger.warning("%s:%d: skipping %s marker: %s", path, line_num, match.kind.value, e)
                    diagnostics.append(
                        ScanDiagnostic(path=path, line=line_num, kind=match.kind, message=str(e))
                    )
                    continue

                target_line = self.locator.find_next_block_start(lines, line_num)
                if target_line is None:
                    logger.debug("%s:%d: no code after %s marker", path, line_num, match.kind.value)
                    continue

                yield ResolvedMarker(line=line_num, target_line=target_line, marker=marker)

    def scan_file(self, content: str, path: str) -> FileScanResult:
        """Build the target table for one file."""
        targets_const: dict[int, str] = {}
        targets_block: dict[int, VariableTraces] = {}
        targets_function: dict[int, VariableTraces] = {}
        diagnostics: list[ScanDiagnostic] = []

        for resolved in self.iter_markers(split_lines(content), path, diagnostics):
            marker = resolved.marker
            # Same-kind markers resolving to the same line: the later one wins.
            if isinstance(marker, ConstMarker):
                targets_const[resolved.target_line] = marker.name
            elif isinstance(marker, BlockMarker):
                targets_block[resolved.target_line] = marker.vars
            elif isinstance(marker, FunctionMarker):
                targets_function[resolved.target_line] = marker.vars

        targets = InstrumentationTargets(
            path=path,
            targets_const=targets_const,
            targets_block=targets_block,
            targets_function=targets_function,
        )
        logger.debug(
            "%s: %d const, %d block, %d function targets",
            path,
            len(targets_const),
            len(targets_block),
            len(targets_function),
        )
        return FileScanResult(targets=targets, diagnostics=diagnostics)

    def get_targets(
        self, files: Iterable[tuple[str, str]], max_workers: int | None = None
    ) -> TargetsReport:
        """Scan ``(content, path)`` pairs independently, preserving order.

        With ``max_workers`` above 1 the files are scanned on a thread pool.
        """
        files = list(files)
        if max_workers is not None and max_workers > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(lambda f: self.scan_file(*f), files))
        else:
            results = [self.scan_file(content, path) for content, path in files]

        return TargetsReport(
            targets=[r.targets for r in results],
            diagnostics=[d for r in results for d in r.diagnostics],
        )


_TARGETS_ADAPTER = TypeAdapter(list[InstrumentationTargets])


def dump_targets(targets: list[InstrumentationTargets], indent: int | None = 2) -> str:
    """Serialize target tables to the JSON array read by the LLVM pass."""
    return _TARGETS_ADAPTER.dump_json(targets, indent=indent).decode()


def load_targets(data: str | bytes) -> list[InstrumentationTargets]:
    return _TARGETS_ADAPTER.validate_json(data)


def write_targets(targets: list[InstrumentationTargets], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(dump_targets(targets))
