#!/usr/bin/env python3

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from abstraktor.sources import DEFAULT_EXTENSIONS

CONFIG_FILE_NAME = "abstraktor_config.json"

LogLevel = Literal["debug", "info", "error", "quiet"]


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or validated."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Invalid config {path}: {reason}")


class AbstraktorConfig(BaseModel):
    """Configuration for scanning and instrumenting a system under test."""

    # Scanning
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_workers: int = 1
    strict: bool = False  # abort on the first malformed trace

    # Instrumented build
    targets_env_var: str = "TARGETS_FILE"
    cc_wrapper: str = "afl-clang-fast"
    cxx_wrapper: str = "afl-clang-fast++"
    build_command: list[str] = Field(default_factory=lambda: ["make"])

    log_level: LogLevel = "info"

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AbstraktorConfig":
        """Load configuration from a JSON file."""
        try:
            args = json.loads(config_path.read_text())
            return cls.model_validate(args)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(config_path, str(e)) from e

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.write_text(json.dumps(self.model_dump(), indent=2))

    @classmethod
    def find_config(cls, start_path: Path) -> Optional["AbstraktorConfig"]:
        """Find configuration by searching up the directory tree."""
        current = start_path.resolve()
        while current != current.parent:
            config_file = current / CONFIG_FILE_NAME
            if config_file.exists():
                return cls.load_from_file(config_file)
            current = current.parent
        return None
