#!/usr/bin/env python3
"""Cross-compile, package and publish Rust binaries to AWS Lambda."""

from __future__ import annotations

import argparse

from lambdaship.commands import deploy, logs, publish, targets
from lambdaship.core import console
from lambdaship.core.config import Settings
from lambdaship.core.errors import LambdashipError, PipelineFailed
from lambdaship.core.logging_config import setup_logging
from lambdaship.core.runner import CommandRunner, RunnerError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lambdaship",
        description="Packages and deploys your project binaries to AWS Lambda",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the build command without running it; no remote calls are made",
    )
    parser.add_argument("--log-level", help="Log level (default: LAMBDASHIP_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    deploy.register_parser(subparsers)
    publish.register_parser(subparsers)
    logs.register_parser(subparsers)
    targets.register_parser(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, settings.LOG_CONFIG)
    runner = CommandRunner(dry_run=bool(args.dry_run))

    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    try:
        return int(args.func(args, runner, settings))
    except PipelineFailed as exc:
        console.error(f"{exc.stage} failed: {exc.cause}")
        if getattr(exc.cause, "code_updated", False):
            console.warning("Remote function code was already updated but no version was published.")
        return 1
    except LambdashipError as exc:
        console.error(str(exc))
        return 1
    except RunnerError as exc:
        console.error(f"Error: {exc}")
        return 1
    except (ValueError, FileNotFoundError) as exc:
        console.error(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
