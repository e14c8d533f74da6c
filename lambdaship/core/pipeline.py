"""
Build-package-deploy pipeline.

Stages run strictly in order:

    RESOLVING -> BUILDING -> PACKAGING -> DEPLOYING -> PUBLISHED

The first failure moves the pipeline to FAILED and is raised as
PipelineFailed(stage, cause). A Pipeline instance runs once; nothing is
carried over to the next run.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from lambdaship.core.build import BuildOrchestrator, BuildRequest, build_volume_name, default_cache_dir
from lambdaship.core.config import ProjectConfig, region_from_arn, resolve_function
from lambdaship.core.credentials import CredentialChain, Credentials, resolve_region
from lambdaship.core.deploy import DeployedVersion, LambdaDeployer
from lambdaship.core.errors import LambdashipError, PipelineFailed
from lambdaship.core.logging_config import register_secrets
from lambdaship.core.package import BOOTSTRAP_ENTRY, Artifact, package_binary
from lambdaship.core.targets import DEFAULT_TARGET, DeploymentTarget, parse_target, resolve_target

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    RESOLVING = "resolving"
    BUILDING = "building"
    PACKAGING = "packaging"
    DEPLOYING = "deploying"
    PUBLISHED = "published"
    FAILED = "failed"


_NEXT_STAGE = {
    Stage.RESOLVING: Stage.BUILDING,
    Stage.BUILDING: Stage.PACKAGING,
    Stage.PACKAGING: Stage.DEPLOYING,
    Stage.DEPLOYING: Stage.PUBLISHED,
}


@dataclass(frozen=True)
class PipelineConfig:
    function: str
    binary: str
    project_dir: Path
    target: str = DEFAULT_TARGET
    cache_dir: Path | None = None
    env: tuple[str, ...] = ()
    keep_debug_info: bool = False
    use_build_volume: bool = False
    region: str | None = None
    profile: str | None = None
    entry_name: str = BOOTSTRAP_ENTRY


@dataclass(frozen=True)
class Resolved:
    target: DeploymentTarget
    function: str
    credentials: Credentials = field(repr=False)


def archive_path_for(project_dir: Path, binary: str) -> Path:
    """Where the archive is left for other tooling after a successful build."""
    return Path(project_dir).resolve() / "target" / "lambda" / "release" / f"{binary}.zip"


class Pipeline:
    def __init__(
        self,
        config: PipelineConfig,
        *,
        orchestrator: BuildOrchestrator,
        credential_chain: CredentialChain,
        deployer_factory: Callable[[Credentials], LambdaDeployer],
        project_config: ProjectConfig | None = None,
        on_stage: Callable[[Stage], None] | None = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.credential_chain = credential_chain
        self.deployer_factory = deployer_factory
        self.project_config = project_config or ProjectConfig()
        self.on_stage = on_stage

        self.stage = Stage.RESOLVING
        self.history: list[Stage] = []
        self.failure: PipelineFailed | None = None
        self.artifact: Artifact | None = None

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)
        logger.debug("Pipeline stage: %s", stage.value)
        if self.on_stage:
            self.on_stage(stage)

    def _advance(self) -> None:
        self._enter(_NEXT_STAGE[self.stage])

    def run(self) -> DeployedVersion:
        if self.history:
            raise RuntimeError("pipeline already ran; create a new Pipeline to deploy again")

        self._enter(Stage.RESOLVING)
        try:
            resolved = self._resolve()

            self._advance()
            request = build_request_for(self.config, resolved.target, self.project_config)
            result = self.orchestrator.build(request)

            self._advance()
            self.artifact = package_binary(
                result.host_binary_path,
                entry_name=self.config.entry_name,
                output_path=archive_path_for(self.config.project_dir, self.config.binary),
            )

            self._advance()
            deployer = self.deployer_factory(resolved.credentials)
            deployed = deployer.deploy(resolved.function, self.artifact)

            self._advance()
            return deployed
        except LambdashipError as exc:
            failed = PipelineFailed(self.stage.value, exc)
            self.failure = failed
            self._enter(Stage.FAILED)
            raise failed from exc

    def _resolve(self) -> Resolved:
        target = parse_target(self.config.target)
        resolve_target(
            target,
            image_override=self.orchestrator.image_override,
            extra_targets=self.project_config.targets,
        )
        function = resolve_function(self.config.function, self.project_config)
        region = resolve_region(
            self.config.region,
            region_from_arn(function),
            profile=self.config.profile,
        )
        credentials = self.credential_chain.resolve(region)
        register_secrets(*credentials.secrets())
        return Resolved(target=target, function=function, credentials=credentials)


def build_request_for(
    config: PipelineConfig,
    target: DeploymentTarget,
    project_config: ProjectConfig | None = None,
) -> BuildRequest:
    project_dir = Path(config.project_dir).resolve()
    volume = build_volume_name(project_dir) if config.use_build_volume else None
    cache_dir = None
    if volume is None:
        cache_dir = config.cache_dir or default_cache_dir()
    project_env = project_config.env if project_config else ()
    return BuildRequest(
        project_dir=project_dir,
        target=target,
        binary=config.binary,
        cache_dir=cache_dir,
        env=tuple(project_env) + tuple(config.env),
        keep_debug_info=config.keep_debug_info,
        build_volume=volume,
    )
