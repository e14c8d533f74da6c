import pytest

from lambdaship.core import logging_config


@pytest.fixture(autouse=True)
def _isolate_aws_env(monkeypatch, tmp_path):
    """Keep developer credentials and config out of the tests."""
    for key in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SESSION_TOKEN",
        "AWS_SECURITY_TOKEN",
        "AWS_PROFILE",
        "AWS_REGION",
        "AWS_DEFAULT_REGION",
        "CARGO_HOME",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "no-credentials"))
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "no-config"))
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")


@pytest.fixture(autouse=True)
def _fresh_redactor(monkeypatch):
    monkeypatch.setattr(logging_config, "_redactor", logging_config.SecretRedactingFilter())
