#!/usr/bin/env python3

"""Runs a native build through the instrumenting compiler wrapper."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path

from abstraktor.config import AbstraktorConfig
from abstraktor.targets import InstrumentationTargets, dump_targets

logger = logging.getLogger(__name__)


class BuildError(RuntimeError):
    """Raised when the instrumented build fails or cannot be started."""

    def __init__(self, command: list[str], returncode: int | None, detail: str = ""):
        self.command = command
        self.returncode = returncode
        message = f"Build command {' '.join(command)!r} failed"
        if returncode is not None:
            message += f" with exit code {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def build_environment(config: AbstraktorConfig, targets_file: Path) -> dict[str, str]:
    env = dict(os.environ)
    env["CC"] = config.cc_wrapper
    env["CXX"] = config.cxx_wrapper
    env[config.targets_env_var] = str(targets_file)
    return env


def run_instrumented_build(
    source_dir: Path,
    targets: list[InstrumentationTargets],
    config: AbstraktorConfig,
) -> None:
    """Build source_dir with the wrapper, feeding it the scanned targets.

    The targets are handed over through a temporary JSON file whose path is
    exported in ``config.targets_env_var``; the file is removed afterwards.
    """
    with tempfile.NamedTemporaryFile(
        mode="w", prefix="abstraktor_targets_", suffix=".json", delete=False
    ) as f:
        f.write(dump_targets(targets))
        targets_file = Path(f.name)

    command = list(config.build_command)
    try:
        logger.debug("Running %s in %s with %s=%s", command, source_dir, config.targets_env_var, targets_file)
        try:
            result = subprocess.run(
                command,
                cwd=source_dir,
                env=build_environment(config, targets_file),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise BuildError(command, None, str(e)) from e

        if result.returncode != 0:
            raise BuildError(command, result.returncode, result.stderr.strip())
    finally:
        targets_file.unlink(missing_ok=True)
