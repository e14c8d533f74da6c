"""CLI parser for tailing a function's CloudWatch logs."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from lambdaship.commands.common import add_aws_arguments, credential_chain_from_args
from lambdaship.core.config import (
    Settings,
    function_name_from,
    load_project_config,
    region_from_arn,
    resolve_function,
)
from lambdaship.core.credentials import resolve_region
from lambdaship.core.log_tail import LOOKBACK_MS, LogTailer, now_ms
from lambdaship.core.logging_config import register_secrets
from lambdaship.core.runner import CommandRunner


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("logs", help="Show a function's recent CloudWatch logs")
    parser.add_argument("function", metavar="FUNCTION", help="Function ARN, name or Lambda.yml alias")
    parser.add_argument("--follow", "-f", action="store_true", help="Keep polling for new events")
    parser.add_argument("--project-dir", default=".", help="Project root holding Lambda.yml")
    add_aws_arguments(parser)
    parser.set_defaults(func=run)


def run(args: argparse.Namespace, runner: CommandRunner, settings: Settings) -> int:
    del runner
    project_dir = Path(args.project_dir).expanduser().resolve()
    project_config = load_project_config(project_dir / settings.PROJECT_CONFIG)
    function = resolve_function(args.function, project_config)
    return tail_logs(
        args,
        settings,
        function=function,
        follow=args.follow,
        since_ms=now_ms() - LOOKBACK_MS,
    )


def tail_logs(
    args: argparse.Namespace,
    settings: Settings,
    *,
    function: str,
    follow: bool = True,
    since_ms: int | None = None,
) -> int:
    region = resolve_region(args.region, region_from_arn(function), profile=args.profile)
    credentials = credential_chain_from_args(args).resolve(region)
    register_secrets(*credentials.secrets())

    tailer = LogTailer(
        credentials,
        function_name_from(function),
        poll_interval=settings.LOG_POLL_INTERVAL,
        since_ms=since_ms,
    )
    try:
        for message in tailer.follow(max_polls=None if follow else 1):
            sys.stdout.write(message if message.endswith("\n") else message + "\n")
            sys.stdout.flush()
    except KeyboardInterrupt:
        return 0
    return 0
