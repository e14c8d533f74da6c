"""CLI parser for publishing the function's current code as a new version."""

from __future__ import annotations

import argparse
from pathlib import Path

from lambdaship.commands.common import (
    add_aws_arguments,
    credential_chain_from_args,
    deployer_factory,
)
from lambdaship.core import console
from lambdaship.core.config import Settings, load_project_config, region_from_arn, resolve_function
from lambdaship.core.credentials import resolve_region
from lambdaship.core.logging_config import register_secrets
from lambdaship.core.runner import CommandRunner


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser(
        "publish",
        help="Publish the function's current code as a new version (recovers a failed publish)",
    )
    parser.add_argument("function", metavar="FUNCTION", help="Function ARN, name or Lambda.yml alias")
    parser.add_argument("--project-dir", default=".", help="Project root holding Lambda.yml")
    add_aws_arguments(parser)
    parser.set_defaults(func=run)


def run(args: argparse.Namespace, runner: CommandRunner, settings: Settings) -> int:
    project_dir = Path(args.project_dir).expanduser().resolve()
    project_config = load_project_config(project_dir / settings.PROJECT_CONFIG)
    function = resolve_function(args.function, project_config)

    if runner.dry_run:
        runner.emit(f"[dry-run] PublishVersion FunctionName={function}")
        return 0

    region = resolve_region(args.region, region_from_arn(function), profile=args.profile)
    credentials = credential_chain_from_args(args).resolve(region)
    register_secrets(*credentials.secrets())

    deployed = deployer_factory(settings)(credentials).publish(function)
    console.success(f"Published version {deployed.version}")
    console.field("ARN", deployed.function_arn)
    return 0
