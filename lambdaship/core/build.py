"""Cross-compilation inside the build container."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Mapping

import docker
from docker.errors import DockerException, NotFound

from lambdaship.core.errors import ArtifactMissing, BuildFailed, EnvironmentUnavailable
from lambdaship.core.runner import CommandRunner, RunnerError
from lambdaship.core.targets import DeploymentTarget, TargetSpec, resolve_target

logger = logging.getLogger(__name__)

CONTAINER_CODE_DIR = "/code"
CONTAINER_REGISTRY_DIR = "/root/.cargo/registry"
CONTAINER_BUILD_VOLUME_DIR = "/build-volume"

# docker run reserves these for its own failures (daemon error, entrypoint not
# executable, entrypoint not found); none of them come from the toolchain.
DOCKER_RUN_ERROR_CODES = frozenset({125, 126, 127})


@dataclass(frozen=True)
class BuildRequest:
    project_dir: Path
    target: DeploymentTarget
    binary: str
    cache_dir: Path | None = None
    env: tuple[str, ...] = ()
    keep_debug_info: bool = False
    build_volume: str | None = None


@dataclass(frozen=True)
class BuildResult:
    exit_code: int
    container_binary_path: str | None = None
    host_binary_path: Path | None = None
    output: str = field(default="", repr=False)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.host_binary_path is not None


def default_cache_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Host cargo registry shared across builds."""
    environ = os.environ if environ is None else environ
    cargo_home = environ.get("CARGO_HOME", "").strip()
    if cargo_home:
        return Path(cargo_home).expanduser() / "registry"
    return Path.home() / ".cargo" / "registry"


def build_volume_name(project_dir: Path) -> str:
    return f"rust-build-volume-{Path(project_dir).resolve().name}"


def check_docker() -> None:
    """Ensure the docker daemon is reachable."""
    try:
        client = docker.from_env()
        client.ping()
    except DockerException as exc:
        raise EnvironmentUnavailable(f"Docker is not available: {exc}") from exc


def ensure_build_volume(name: str) -> bool:
    """Create the named build volume if missing. Returns True when created."""
    try:
        client = docker.from_env()
        try:
            client.volumes.get(name)
            return False
        except NotFound:
            logger.info("Build volume %s not found, creating it", name)
        client.volumes.create(name=name)
    except DockerException as exc:
        raise EnvironmentUnavailable(f"Failed to create docker build volume {name}: {exc}") from exc
    logger.info("Created docker volume %s", name)
    return True


def build_docker_args(
    request: BuildRequest,
    spec: TargetSpec,
    *,
    code_dir: str = CONTAINER_CODE_DIR,
) -> list[str]:
    args = [
        "run",
        "--rm",
        "-v",
        f"{Path(request.project_dir).resolve()}:{code_dir}",
    ]

    if request.build_volume:
        args.extend(["-v", f"{request.build_volume}:{CONTAINER_BUILD_VOLUME_DIR}"])
        args.extend(["-v", f"{request.build_volume}:{CONTAINER_REGISTRY_DIR}"])
    elif request.cache_dir is None:
        raise EnvironmentUnavailable("No dependency cache directory configured")
    else:
        args.extend(["-v", f"{Path(request.cache_dir).resolve()}:{CONTAINER_REGISTRY_DIR}"])

    args.extend(["-e", f"BIN={request.binary}"])
    args.extend(["-e", f"TARGET_TRIPLE={spec.triple}"])
    args.extend(["-e", f"OUTPUT_DIR={spec.output_dir(code_dir)}"])

    if request.keep_debug_info:
        args.extend(["-e", "DEBUGINFO=1"])

    for item in request.env:
        args.extend(["-e", item])

    args.append(spec.image)
    return args


def host_path_for(container_path: str, project_dir: Path, code_dir: str = CONTAINER_CODE_DIR) -> Path:
    """Translate a path under the code mount into its host location."""
    relative = PurePosixPath(container_path).relative_to(PurePosixPath(code_dir))
    return Path(project_dir).resolve().joinpath(*relative.parts)


class BuildOrchestrator:
    """Runs one build container to completion and verifies its output."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        docker_bin: str = "docker",
        code_dir: str = CONTAINER_CODE_DIR,
        image_override: str | None = None,
        extra_targets: Mapping[str, TargetSpec] | None = None,
        on_line: Callable[[str], None] | None = None,
    ) -> None:
        self.runner = runner
        self.docker_bin = docker_bin
        self.code_dir = code_dir
        self.image_override = image_override
        self.extra_targets = dict(extra_targets or {})
        self.on_line = on_line

    def build(self, request: BuildRequest) -> BuildResult:
        spec = resolve_target(
            request.target,
            image_override=self.image_override,
            extra_targets=self.extra_targets,
        )
        container_path = f"{spec.output_dir(self.code_dir)}/{request.binary}"
        try:
            host_path = host_path_for(container_path, request.project_dir, self.code_dir)
        except ValueError as exc:
            raise EnvironmentUnavailable(
                f"Output directory {spec.output_dir(self.code_dir)} is outside the "
                f"project mount {self.code_dir}"
            ) from exc

        self._check_mounts(request)
        if not self.runner.dry_run:
            check_docker()
            if request.build_volume:
                ensure_build_volume(request.build_volume)

        cmd = [self.docker_bin, *build_docker_args(request, spec, code_dir=self.code_dir)]
        logger.info("Building %s for %s with %s", request.binary, request.target, spec.image)
        try:
            completed = self.runner.run(
                cmd,
                check=False,
                on_line=self.on_line,
            )
        except RunnerError as exc:
            raise EnvironmentUnavailable(str(exc)) from exc

        if self.runner.dry_run:
            return BuildResult(0, container_path, host_path, "")

        if completed.returncode in DOCKER_RUN_ERROR_CODES:
            raise EnvironmentUnavailable(
                f"docker could not run the build container (exit {completed.returncode}): "
                f"{_last_line(completed.stdout)}"
            )
        if completed.returncode != 0:
            raise BuildFailed(completed.returncode)

        if not host_path.is_file():
            raise ArtifactMissing(host_path)

        logger.debug("Build produced %s", host_path)
        return BuildResult(0, container_path, host_path, completed.stdout)

    def _check_mounts(self, request: BuildRequest) -> None:
        if not Path(request.project_dir).is_dir():
            raise EnvironmentUnavailable(f"Project directory does not exist: {request.project_dir}")
        if request.build_volume:
            return
        if request.cache_dir is None:
            raise EnvironmentUnavailable("No dependency cache directory configured")
        if not Path(request.cache_dir).is_dir():
            raise EnvironmentUnavailable(
                f"Dependency cache directory does not exist: {request.cache_dir}"
            )


def _last_line(output: str) -> str:
    lines = [line for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else "no output"
