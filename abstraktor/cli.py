#!/usr/bin/env python3

import logging
import shlex
import sys
from pathlib import Path

import click

from abstraktor import __version__
from abstraktor.config import AbstraktorConfig, ConfigError
from abstraktor.console import Console
from abstraktor.llvm import BuildError, run_instrumented_build
from abstraktor.markers import TraceParseError
from abstraktor.sources import SourceReadError, collect_sources
from abstraktor.targets import Instrumentor, TargetsReport, dump_targets, write_targets

LOGGING_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.WARNING,
    "error": logging.ERROR,
    "quiet": logging.CRITICAL + 1,
}


class AppContext:
    def __init__(self, config: AbstraktorConfig, console: Console):
        self.config = config
        self.console = console


def load_config(config_path: Path | None) -> AbstraktorConfig:
    if config_path is not None:
        return AbstraktorConfig.load_from_file(config_path)
    return AbstraktorConfig.find_config(Path.cwd()) or AbstraktorConfig()


def apply_overrides(config: AbstraktorConfig, **overrides) -> AbstraktorConfig:
    """Return a copy of config with the given CLI values applied."""
    updates = {}
    for key, value in overrides.items():
        if value is None or value == ():
            continue
        updates[key] = list(value) if isinstance(value, tuple) else value
    return config.model_copy(update=updates)


def scan(path: Path, config: AbstraktorConfig, console: Console, absolute: bool = False) -> TargetsReport:
    console.log(f"Scanning {path} for instrumentation markers")
    sources = collect_sources(path, config.extensions, absolute=absolute)
    console.debug(f"Read {len(sources)} files")

    report = Instrumentor(strict=config.strict).get_targets(sources, max_workers=config.max_workers)

    if report.diagnostics:
        console.warning(f"Skipped {len(report.diagnostics)} markers with malformed traces")
    total = sum(
        len(t.targets_const) + len(t.targets_block) + len(t.targets_function)
        for t in report.targets
    )
    console.success(f"Found {total} targets in {len(report.targets)} files")
    return report


def scan_options(func):
    func = click.option(
        "--strict/--no-strict", default=None, help="Abort on the first malformed trace"
    )(func)
    func = click.option("--workers", "max_workers", type=int, help="Files scanned in parallel")(func)
    func = click.option(
        "--ext",
        "extensions",
        multiple=True,
        help="Source extension to scan (can be specified multiple times)",
    )(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="abstraktor")
@click.option(
    "--log-level",
    type=click.Choice(list(LOGGING_LEVELS), case_sensitive=False),
    help="Output verbosity",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to abstraktor_config.json",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, config_path: Path | None):
    """Abstraktor: instrument a distributed system for nemesis testing."""
    log_level = log_level and log_level.lower()
    try:
        config = apply_overrides(load_config(config_path), log_level=log_level)
    except ConfigError as e:
        Console(log_level or "info").error(str(e))
        sys.exit(1)
    logging.basicConfig(level=LOGGING_LEVELS[config.log_level], force=True)

    console = Console(config.log_level)
    console.intro()
    ctx.obj = AppContext(config, console)


@cli.command("get-targets")
@click.option(
    "--path",
    "-p",
    required=True,
    type=click.Path(path_type=Path),
    help="Source file or directory to scan",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the targets JSON (stdout if omitted)",
)
@scan_options
@click.pass_obj
def get_targets(app: AppContext, path: Path, output: Path | None, **overrides):
    """Find marker comments and write the resolved instrumentation targets."""
    config = apply_overrides(app.config, **overrides)
    try:
        report = scan(path, config, app.console)
    except (SourceReadError, TraceParseError) as e:
        app.console.error(str(e))
        sys.exit(1)

    if output is None:
        click.echo(dump_targets(report.targets))
    else:
        write_targets(report.targets, output)
        app.console.success(f"Wrote targets to {output}")
    app.console.outro()


@cli.command()
@click.option(
    "--path",
    "-p",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Source directory of the system under test",
)
@click.option(
    "--build-command",
    help="Build command run with the compiler wrapper (default: make)",
)
@scan_options
@click.pass_obj
def instrument(app: AppContext, path: Path, build_command: str | None, **overrides):
    """Scan a source tree and build it with the instrumenting compiler."""
    if build_command is not None:
        overrides["build_command"] = tuple(shlex.split(build_command))
    config = apply_overrides(app.config, **overrides)

    try:
        report = scan(path, config, app.console, absolute=True)
        app.console.log(f"Building {path} with {config.cc_wrapper}")
        run_instrumented_build(path, report.targets, config)
    except (SourceReadError, TraceParseError, BuildError) as e:
        app.console.error(str(e))
        sys.exit(1)

    app.console.success(f"Instrumented build of {path} finished")
    app.console.outro()


def main():
    cli()


if __name__ == "__main__":
    main()
