from unittest.mock import patch

import pytest

from lambdaship.cli import build_parser, main
from lambdaship.core.deploy import DeployedVersion
from lambdaship.core.errors import DeploymentError, PipelineFailed, PublishFailed

ARN = "arn:aws:lambda:eu-north-1:123456789012:function:hello"


@pytest.fixture
def workspace(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "registry").mkdir()
    return tmp_path


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_deploy_parser_defaults():
    args = build_parser().parse_args(["deploy", ARN, "hello"])

    assert args.target == "x86_64-linux-musl"
    assert args.env == []
    assert args.use_build_volume is False
    assert args.tail_logs is False


def test_targets_lists_builtin_targets(workspace, capsys):
    assert main(["targets"]) == 0

    out = capsys.readouterr().out
    assert "x86_64-linux-musl" in out
    assert "aarch64-linux-gnu" in out
    assert "x86_64-unknown-linux-musl" in out


def test_deploy_dry_run_prints_docker_command_only(workspace, capsys):
    with patch("lambdaship.core.build.docker.from_env") as from_env:
        code = main(
            [
                "--dry-run",
                "deploy",
                ARN,
                "hello",
                "--cache-dir",
                str(workspace / "registry"),
                "-e",
                "RUST_LOG=debug",
            ]
        )

    assert code == 0
    out = capsys.readouterr().out
    assert "[dry-run] $ docker run --rm" in out
    assert "RUST_LOG=debug" in out
    from_env.assert_not_called()


def test_deploy_rejects_malformed_env(workspace, capsys):
    code = main(["--dry-run", "deploy", ARN, "hello", "-e", "NOEQUALS"])

    assert code == 1
    assert "KEY=VALUE" in capsys.readouterr().err


def test_deploy_without_region_fails_in_resolving(workspace, capsys):
    code = main(["deploy", "hello", "hello", "--cache-dir", str(workspace / "registry")])

    assert code == 1
    assert "resolving failed" in capsys.readouterr().err


def test_publish_failure_warns_that_code_was_updated(workspace, capsys):
    failure = PipelineFailed(
        "deploying", PublishFailed(ARN, DeploymentError("boom", code="ServiceException"))
    )
    with patch("lambdaship.commands.deploy.Pipeline") as pipeline:
        pipeline.return_value.run.side_effect = failure
        code = main(["deploy", ARN, "hello", "--cache-dir", str(workspace / "registry")])

    assert code == 1
    captured = capsys.readouterr()
    assert "deploying failed" in captured.err
    assert "already updated" in captured.out


def test_publish_dry_run_makes_no_remote_call(workspace, capsys):
    with patch("lambdaship.commands.publish.deployer_factory") as factory:
        code = main(["--dry-run", "publish", ARN])

    assert code == 0
    assert f"[dry-run] PublishVersion FunctionName={ARN}" in capsys.readouterr().out
    factory.assert_not_called()


def test_publish_resolves_alias_and_prints_version(workspace, monkeypatch, capsys):
    (workspace / "Lambda.yml").write_text(f"arns:\n  prod: {ARN}\n", encoding="utf-8")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIDEXAMPLE")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret-example")

    with patch("lambdaship.commands.publish.deployer_factory") as factory:
        deployer = factory.return_value.return_value
        deployer.publish.return_value.version = "9"
        deployer.publish.return_value.function_arn = f"{ARN}:9"
        code = main(["publish", "prod"])

    assert code == 0
    deployer.publish.assert_called_once_with(ARN)
    out = capsys.readouterr().out
    assert "Published version 9" in out
    assert "secret-example" not in out


def test_tail_logs_after_deploy_uses_region_of_deployed_function(workspace, monkeypatch):
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIDEXAMPLE")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret-example")
    deployed = DeployedVersion(version="5", function_arn=f"{ARN}:5", function_name="hello")

    with patch("lambdaship.commands.deploy.Pipeline") as pipeline, patch(
        "lambdaship.commands.logs.LogTailer"
    ) as tailer:
        pipeline.return_value.run.return_value = deployed
        tailer.return_value.follow.return_value = iter(["START RequestId: 1"])
        code = main(
            ["deploy", ARN, "hello", "--cache-dir", str(workspace / "registry"), "--tail-logs"]
        )

    assert code == 0
    credentials, function_name = tailer.call_args.args
    assert credentials.region == "eu-north-1"
    assert function_name == "hello"
