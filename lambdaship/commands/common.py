"""Argument groups shared by commands that talk to AWS."""

from __future__ import annotations

import argparse

from lambdaship.core.config import Settings
from lambdaship.core.credentials import CredentialChain, Credentials, default_providers
from lambdaship.core.deploy import LambdaDeployer, RetryPolicy, create_lambda_client


def add_aws_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("AWS")
    group.add_argument("--region", help="AWS region (default: from ARN, AWS_REGION or profile)")
    group.add_argument("--profile", help="Shared credentials profile (default: AWS_PROFILE)")
    group.add_argument("--access-key", help="AWS access key id")
    group.add_argument("--secret-key", help="AWS secret access key")
    group.add_argument("--session-token", help="AWS session token")


def credential_chain_from_args(args: argparse.Namespace) -> CredentialChain:
    return CredentialChain(
        default_providers(
            access_key=args.access_key,
            secret_key=args.secret_key,
            session_token=args.session_token,
            profile=args.profile,
        )
    )


def retry_policy_from(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.DEPLOY_MAX_ATTEMPTS,
        base_delay=settings.DEPLOY_BACKOFF_BASE,
        max_delay=settings.DEPLOY_BACKOFF_MAX,
    )


def deployer_factory(settings: Settings):
    retry = retry_policy_from(settings)

    def create(credentials: Credentials) -> LambdaDeployer:
        client = create_lambda_client(
            credentials,
            connect_timeout=settings.CONNECT_TIMEOUT,
            read_timeout=settings.READ_TIMEOUT,
        )
        return LambdaDeployer(credentials, client=client, retry=retry)

    return create
