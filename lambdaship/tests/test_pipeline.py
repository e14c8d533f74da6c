from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from lambdaship.core.build import BuildOrchestrator
from lambdaship.core.config import ProjectConfig
from lambdaship.core.credentials import CredentialChain, ExplicitProvider
from lambdaship.core.deploy import LambdaDeployer, RetryPolicy
from lambdaship.core.errors import (
    AuthenticationUnavailable,
    BuildFailed,
    PipelineFailed,
    PublishFailed,
    UnsupportedTarget,
)
from lambdaship.core.logging_config import get_redactor
from lambdaship.core.package import read_archive_entry
from lambdaship.core.pipeline import Pipeline, PipelineConfig, Stage, archive_path_for
from lambdaship.tests.fakes import FakeRunner, writes_binary

FUNCTION = "arn:aws:lambda:eu-north-1:123456789012:function:hello"
BINARY_BYTES = b"\x7fELF-hello"


@pytest.fixture
def project(tmp_path: Path) -> Path:
    project_dir = tmp_path / "hello"
    project_dir.mkdir()
    (tmp_path / "registry").mkdir()
    return project_dir


@pytest.fixture(autouse=True)
def docker_daemon():
    with patch("lambdaship.core.build.docker.from_env") as from_env:
        yield from_env


def _binary_path(project: Path) -> Path:
    return project.resolve() / "target" / "lambda" / "release" / "hello"


def _lambda_client(publish_error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.update_function_code.return_value = {"CodeSha256": "sha"}
    if publish_error is not None:
        client.publish_version.side_effect = publish_error
    else:
        client.publish_version.return_value = {
            "Version": "5",
            "FunctionArn": f"{FUNCTION}:5",
            "FunctionName": "hello",
            "CodeSha256": "sha",
        }
    return client


def _pipeline(
    project: Path,
    runner: FakeRunner,
    client: MagicMock,
    *,
    target: str = "x86_64-linux-musl",
    providers=None,
    function: str = FUNCTION,
    project_config: ProjectConfig | None = None,
) -> Pipeline:
    config = PipelineConfig(
        function=function,
        binary="hello",
        project_dir=project,
        target=target,
        cache_dir=project.parent / "registry",
    )
    if providers is None:
        providers = [ExplicitProvider("AKIDEXAMPLE", "secret-example")]
    return Pipeline(
        config,
        orchestrator=BuildOrchestrator(runner),
        credential_chain=CredentialChain(providers),
        deployer_factory=lambda creds: LambdaDeployer(
            creds, client=client, retry=RetryPolicy(base_delay=0), sleep=lambda _s: None
        ),
        project_config=project_config,
    )


def test_successful_run_publishes_version(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project), BINARY_BYTES))
    client = _lambda_client()
    pipeline = _pipeline(project, runner, client)

    deployed = pipeline.run()

    assert deployed.version == "5"
    assert deployed.function_arn == f"{FUNCTION}:5"
    assert pipeline.stage is Stage.PUBLISHED
    assert pipeline.history == [
        Stage.RESOLVING,
        Stage.BUILDING,
        Stage.PACKAGING,
        Stage.DEPLOYING,
        Stage.PUBLISHED,
    ]
    name, mode, content = read_archive_entry(client.update_function_code.call_args.kwargs["ZipFile"])
    assert (name, content) == ("bootstrap", BINARY_BYTES)
    assert mode & 0o100
    # The archive is left next to the binary for other tooling.
    assert archive_path_for(project, "hello").read_bytes() == pipeline.artifact.data


def test_failed_build_never_packages_or_deploys(project):
    runner = FakeRunner(returncode=1, produce=writes_binary(_binary_path(project)))
    client = _lambda_client()
    pipeline = _pipeline(project, runner, client)

    with pytest.raises(PipelineFailed) as excinfo:
        pipeline.run()

    assert excinfo.value.stage == "building"
    assert isinstance(excinfo.value.cause, BuildFailed)
    assert excinfo.value.cause.exit_code == 1
    assert pipeline.artifact is None
    assert not archive_path_for(project, "hello").exists()
    client.update_function_code.assert_not_called()
    client.publish_version.assert_not_called()
    assert pipeline.history[-1] is Stage.FAILED
    assert Stage.PACKAGING not in pipeline.history


def test_publish_failure_reports_code_already_changed(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project)))
    error = ClientError(
        {"Error": {"Code": "InvalidParameterValueException", "Message": "nope"}},
        "PublishVersion",
    )
    client = _lambda_client(publish_error=error)
    pipeline = _pipeline(project, runner, client)

    with pytest.raises(PipelineFailed) as excinfo:
        pipeline.run()

    assert excinfo.value.stage == "deploying"
    assert isinstance(excinfo.value.cause, PublishFailed)
    assert "already been updated" in str(excinfo.value)
    client.update_function_code.assert_called_once()


def test_authentication_failure_aborts_before_build(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project)))
    client = _lambda_client()
    pipeline = _pipeline(project, runner, client, providers=[ExplicitProvider(None, None)])

    with pytest.raises(PipelineFailed) as excinfo:
        pipeline.run()

    assert excinfo.value.stage == "resolving"
    assert isinstance(excinfo.value.cause, AuthenticationUnavailable)
    assert runner.commands == []
    client.update_function_code.assert_not_called()


def test_unsupported_target_fails_in_resolving(project):
    runner = FakeRunner()
    pipeline = _pipeline(project, runner, _lambda_client(), target="sparc-solaris")

    with pytest.raises(PipelineFailed) as excinfo:
        pipeline.run()

    assert excinfo.value.stage == "resolving"
    assert isinstance(excinfo.value.cause, UnsupportedTarget)
    assert runner.commands == []


def test_alias_from_project_config_is_deployed(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project)))
    client = _lambda_client()
    pipeline = _pipeline(
        project,
        runner,
        client,
        function="prod",
        project_config=ProjectConfig(arns={"prod": FUNCTION}, env=("RUST_LOG=info",)),
    )

    pipeline.run()

    assert client.update_function_code.call_args.kwargs["FunctionName"] == FUNCTION
    assert "RUST_LOG=info" in runner.commands[0]


def test_pipeline_runs_only_once(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project)))
    pipeline = _pipeline(project, runner, _lambda_client())
    pipeline.run()

    with pytest.raises(RuntimeError):
        pipeline.run()


def test_resolved_credentials_are_registered_for_redaction(project):
    runner = FakeRunner(produce=writes_binary(_binary_path(project)))
    pipeline = _pipeline(project, runner, _lambda_client())
    pipeline.run()

    assert get_redactor().redact("key=AKIDEXAMPLE secret=secret-example") == "key=**** secret=****"
