"""CLI parser for the build-package-deploy command."""

from __future__ import annotations

import argparse
from pathlib import Path

from lambdaship.commands.common import (
    add_aws_arguments,
    credential_chain_from_args,
    deployer_factory,
)
from lambdaship.commands.logs import tail_logs
from lambdaship.core import console
from lambdaship.core.build import BuildOrchestrator
from lambdaship.core.config import Settings, load_project_config
from lambdaship.core.deploy import DeployedVersion
from lambdaship.core.pipeline import Pipeline, PipelineConfig, Stage, build_request_for
from lambdaship.core.runner import CommandRunner
from lambdaship.core.targets import DEFAULT_TARGET, parse_target

_STAGE_MESSAGES = {
    Stage.RESOLVING: "Resolving target, function and credentials",
    Stage.BUILDING: "Building in container",
    Stage.PACKAGING: "Packaging archive",
    Stage.DEPLOYING: "Updating function code and publishing",
}


def register_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser(
        "deploy",
        help="Build BIN in a container, package it and publish it to a Lambda function",
    )
    parser.add_argument(
        "function",
        metavar="FUNCTION",
        help=(
            "Function ARN (e.g. arn:aws:lambda:eu-north-1:1234:function:MyFunc), "
            "function name, or an alias from the arns table in Lambda.yml"
        ),
    )
    parser.add_argument(
        "binary",
        metavar="BIN",
        help="Project binary to deploy (e.g. mylambdafunc for src/bin/mylambdafunc.rs)",
    )
    parser.add_argument(
        "--target",
        default=DEFAULT_TARGET,
        help=f"Deployment target <arch>-<family> (default: {DEFAULT_TARGET})",
    )
    parser.add_argument("--docker-image", help="Override the build image for the target")
    parser.add_argument("--project-dir", default=".", help="Project root (default: cwd)")
    parser.add_argument(
        "--cache-dir",
        help="Dependency cache directory (default: $CARGO_HOME/registry)",
    )
    parser.add_argument(
        "--use-build-volume",
        action="store_true",
        help="Use a managed docker volume for build state instead of bind mounts",
    )
    parser.add_argument(
        "--keep-debug-info",
        action="store_true",
        help="Retain debug info in the executable (for backtraces)",
    )
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Pass an environment variable to the build container (repeatable)",
    )
    parser.add_argument(
        "--tail-logs",
        action="store_true",
        help="Follow the function's CloudWatch logs after a successful deploy",
    )
    add_aws_arguments(parser)
    parser.set_defaults(func=run)


def _validate_env(items: list[str]) -> tuple[str, ...]:
    for item in items:
        key, sep, _ = item.partition("=")
        if not sep or key.strip() == "":
            raise ValueError(f"invalid --env value {item!r}; expected KEY=VALUE")
    return tuple(items)


def run(args: argparse.Namespace, runner: CommandRunner, settings: Settings) -> int:
    project_dir = Path(args.project_dir).expanduser().resolve()
    project_config = load_project_config(project_dir / settings.PROJECT_CONFIG)

    config = PipelineConfig(
        function=args.function,
        binary=args.binary,
        project_dir=project_dir,
        target=args.target,
        cache_dir=Path(args.cache_dir).expanduser() if args.cache_dir else None,
        env=_validate_env(args.env),
        keep_debug_info=args.keep_debug_info,
        use_build_volume=args.use_build_volume,
        region=args.region,
        profile=args.profile,
        entry_name=settings.ARCHIVE_ENTRY_NAME,
    )
    orchestrator = BuildOrchestrator(
        runner,
        docker_bin=settings.DOCKER_BIN,
        code_dir=settings.CONTAINER_CODE_DIR,
        image_override=args.docker_image or settings.DOCKER_IMAGE or None,
        extra_targets=project_config.targets,
    )

    if runner.dry_run:
        request = build_request_for(config, parse_target(config.target), project_config)
        orchestrator.build(request)
        console.info("Dry run: packaging and deployment skipped")
        return 0

    pipeline = Pipeline(
        config,
        orchestrator=orchestrator,
        credential_chain=credential_chain_from_args(args),
        deployer_factory=deployer_factory(settings),
        project_config=project_config,
        on_stage=_announce,
    )
    deployed = pipeline.run()
    print_deployed(deployed)

    if args.tail_logs:
        console.step("Tailing logs")
        return tail_logs(args, settings, function=deployed.function_arn or deployed.function_name)
    return 0


def _announce(stage: Stage) -> None:
    message = _STAGE_MESSAGES.get(stage)
    if message:
        console.step(message)


def print_deployed(deployed: DeployedVersion) -> None:
    console.success("Deploy successful")
    console.field("Function", deployed.function_name)
    console.field("Version", deployed.version)
    console.field("SHA-256", deployed.code_sha256)
    console.field("ARN", deployed.function_arn)
