"""CLI parser for listing deployment targets."""

from __future__ import annotations

import argparse
from pathlib import Path

from lambdaship.core.config import Settings, load_project_config
from lambdaship.core.runner import CommandRunner
from lambdaship.core.targets import parse_target, resolve_target, supported_targets


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("targets", help="List supported deployment targets")
    parser.add_argument("--project-dir", default=".", help="Project root holding Lambda.yml")
    parser.set_defaults(func=run)


def run(args: argparse.Namespace, runner: CommandRunner, settings: Settings) -> int:
    project_dir = Path(args.project_dir).expanduser().resolve()
    extra = load_project_config(project_dir / settings.PROJECT_CONFIG).targets
    for key in supported_targets(extra):
        spec = resolve_target(parse_target(key), extra_targets=extra)
        runner.emit(f"{key:<22}{spec.triple:<30}{spec.image}")
    return 0
