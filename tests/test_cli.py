#!/usr/bin/env python3
"""
Tests for the abstraktor command line.
"""

import json
import logging

import pytest
from click.testing import CliRunner

from abstraktor import cli as cli_module
from abstraktor.cli import cli
from abstraktor.config import AbstraktorConfig
from abstraktor.llvm import BuildError
from abstraktor.targets import load_targets

RAFT_C = """\
int role;

void become_leader(int term) {
    // ABSTRAKTOR_CONST: Leader
    role = 2;
    // ABSTRAKTOR_BLOCK_EVENT: term->0
    broadcast(term);
}
"""

BAD_TRACE_C = """\
// ABSTRAKTOR_FUNC: r->x
int f(int r) {
// ABSTRAKTOR_CONST: Candidate
role = 1;
}
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def root_logger():
    """Remove the handler the cli group installs on the root logger."""
    root = logging.getLogger()
    level = root.level
    before = list(root.handlers)
    yield root
    for handler in root.handlers[:]:
        if handler not in before and type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def sut(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    src = tmp_path / "sut"
    src.mkdir()
    (src / "raft.c").write_text(RAFT_C)
    return src


def test_get_targets_prints_json(runner, sut):
    result = runner.invoke(cli, ["--log-level", "quiet", "get-targets", "--path", str(sut / "raft.c")])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [
        {
            "path": str(sut / "raft.c"),
            "targets_const": {"5": "Leader"},
            "targets_block": {"7": {"term": [0]}},
            "targets_function": {},
        }
    ]


def test_get_targets_writes_output_file(runner, sut, tmp_path):
    output = tmp_path / "targets.json"
    result = runner.invoke(cli, ["get-targets", "-p", str(sut), "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert "Execution successful!" in result.output
    targets = load_targets(output.read_text())
    assert [t.path for t in targets] == [str(sut / "raft.c")]
    assert targets[0].targets_const == {5: "Leader"}


def test_get_targets_extension_filter(runner, sut, tmp_path):
    (sut / "notes.txt").write_text("// ABSTRAKTOR_CONST: Ignored\nx = 1;\n")
    output = tmp_path / "targets.json"
    result = runner.invoke(
        cli, ["get-targets", "-p", str(sut), "-o", str(output), "--ext", "txt", "--workers", "2"]
    )

    assert result.exit_code == 0, result.output
    targets = load_targets(output.read_text())
    assert [t.targets_const for t in targets] == [{2: "Ignored"}]


def test_get_targets_missing_path(runner, tmp_path):
    result = runner.invoke(cli, ["get-targets", "-p", str(tmp_path / "missing")])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_malformed_trace_is_skipped(runner, sut, tmp_path):
    (sut / "bad.c").write_text(BAD_TRACE_C)
    output = tmp_path / "targets.json"
    result = runner.invoke(cli, ["get-targets", "-p", str(sut), "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert "Skipped 1 markers" in result.output
    bad = next(t for t in load_targets(output.read_text()) if t.path.endswith("bad.c"))
    assert bad.targets_function == {}
    assert bad.targets_const == {4: "Candidate"}


def test_malformed_trace_strict_fails(runner, sut, tmp_path):
    (sut / "bad.c").write_text(BAD_TRACE_C)
    output = tmp_path / "targets.json"
    result = runner.invoke(cli, ["get-targets", "-p", str(sut), "-o", str(output), "--strict"])

    assert result.exit_code == 1
    assert not output.exists()


def test_strict_from_config_file(runner, sut, tmp_path):
    (sut / "bad.c").write_text(BAD_TRACE_C)
    config_path = tmp_path / "abstraktor_config.json"
    AbstraktorConfig(strict=True).save_to_file(config_path)

    result = runner.invoke(cli, ["--config", str(config_path), "get-targets", "-p", str(sut)])
    assert result.exit_code == 1

    # Found by searching up from the working directory, and overridable.
    assert runner.invoke(cli, ["get-targets", "-p", str(sut)]).exit_code == 1
    assert runner.invoke(cli, ["get-targets", "-p", str(sut), "--no-strict"]).exit_code == 0


def test_instrument_runs_build_with_absolute_paths(runner, sut, monkeypatch):
    calls = []

    def fake_build(source_dir, targets, config):
        calls.append((source_dir, targets, config))

    monkeypatch.setattr(cli_module, "run_instrumented_build", fake_build)
    result = runner.invoke(
        cli, ["instrument", "-p", "sut", "--build-command", "make -C build all"]
    )

    assert result.exit_code == 0, result.output
    source_dir, targets, config = calls[0]
    assert source_dir.name == "sut"
    assert targets[0].path == str((sut / "raft.c").resolve())
    assert config.build_command == ["make", "-C", "build", "all"]


def test_instrument_build_failure(runner, sut, monkeypatch):
    def failing_build(source_dir, targets, config):
        raise BuildError(["make"], 2, "boom")

    monkeypatch.setattr(cli_module, "run_instrumented_build", failing_build)
    result = runner.invoke(cli, ["instrument", "-p", str(sut)])

    assert result.exit_code == 1
    assert "boom" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "abstraktor" in result.output


def test_log_level_replaces_existing_logging_setup(runner, sut, root_logger):
    root_logger.addHandler(logging.NullHandler())
    result = runner.invoke(cli, ["--log-level", "debug", "get-targets", "-p", str(sut)])

    assert result.exit_code == 0, result.output
    assert root_logger.level == logging.DEBUG
    assert not any(isinstance(h, logging.NullHandler) for h in root_logger.handlers)


def test_broken_config_file_reports_error(runner, sut, tmp_path):
    (tmp_path / "abstraktor_config.json").write_text("{not json")
    result = runner.invoke(cli, ["get-targets", "-p", str(sut)])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "Invalid config" in result.output


def test_invalid_config_value_reports_error(runner, sut, tmp_path):
    config_path = tmp_path / "abstraktor_config.json"
    config_path.write_text(json.dumps({"log_level": "loud"}))
    result = runner.invoke(cli, ["--config", str(config_path), "get-targets", "-p", str(sut)])

    assert result.exit_code == 1
    assert "Error:" in result.output
