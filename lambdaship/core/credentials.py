"""
Credential resolution.

Credentials are resolved once per run by trying an ordered list of providers:
explicit parameters, environment variables, the shared credentials file and
finally the instance metadata service. The first provider that yields a key
pair wins.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from botocore import credentials as botocore_credentials
from botocore.exceptions import BotoCoreError, ProfileNotFound
from botocore.session import Session as BotocoreSession
from botocore.utils import InstanceMetadataFetcher

from lambdaship.core.errors import AuthenticationUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    access_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)
    region: str = ""
    provider: str = ""

    def secrets(self) -> list[str]:
        return [value for value in (self.access_key, self.secret_key, self.session_token) if value]

    def with_region(self, region: str) -> "Credentials":
        return Credentials(
            access_key=self.access_key,
            secret_key=self.secret_key,
            session_token=self.session_token,
            region=region,
            provider=self.provider,
        )


class CredentialProvider:
    """One source of credentials. load() returns None when the source is empty."""

    name = "provider"

    def load(self) -> Credentials | None:
        raise NotImplementedError


class ExplicitProvider(CredentialProvider):
    name = "explicit"

    def __init__(
        self,
        access_key: str | None,
        secret_key: str | None,
        session_token: str | None = None,
    ) -> None:
        self.access_key = access_key
        self.secret_key = secret_key
        self.session_token = session_token

    def load(self) -> Credentials | None:
        if not self.access_key or not self.secret_key:
            return None
        return Credentials(
            access_key=self.access_key,
            secret_key=self.secret_key,
            session_token=self.session_token or None,
            provider=self.name,
        )


class _BotocoreProvider(CredentialProvider):
    """Adapts a botocore credential provider to the chain interface."""

    def _delegate(self):
        raise NotImplementedError

    def load(self) -> Credentials | None:
        try:
            loaded = self._delegate().load()
        except BotoCoreError as exc:
            logger.debug("Credential provider %s failed: %s", self.name, exc)
            return None
        if loaded is None:
            return None
        frozen = loaded.get_frozen_credentials()
        if not frozen.access_key or not frozen.secret_key:
            return None
        return Credentials(
            access_key=frozen.access_key,
            secret_key=frozen.secret_key,
            session_token=frozen.token or None,
            provider=self.name,
        )


class EnvironmentProvider(_BotocoreProvider):
    name = "environment"

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self.environ = os.environ if environ is None else environ

    def _delegate(self):
        return botocore_credentials.EnvProvider(environ=dict(self.environ))


class SharedProfileProvider(_BotocoreProvider):
    name = "shared-profile"

    def __init__(self, profile: str | None = None, credentials_file: str | None = None) -> None:
        self.profile = profile or os.environ.get("AWS_PROFILE") or "default"
        self.credentials_file = credentials_file or os.path.expanduser(
            os.environ.get("AWS_SHARED_CREDENTIALS_FILE", "~/.aws/credentials")
        )

    def _delegate(self):
        return botocore_credentials.SharedCredentialProvider(
            creds_filename=self.credentials_file,
            profile_name=self.profile,
        )


class InstanceMetadataProvider(_BotocoreProvider):
    name = "instance-metadata"

    def __init__(self, timeout: float = 1.0, num_attempts: int = 1) -> None:
        self.timeout = timeout
        self.num_attempts = num_attempts

    def _delegate(self):
        return botocore_credentials.InstanceMetadataProvider(
            iam_role_fetcher=InstanceMetadataFetcher(
                timeout=self.timeout,
                num_attempts=self.num_attempts,
            )
        )


def default_providers(
    *,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
) -> list[CredentialProvider]:
    return [
        ExplicitProvider(access_key, secret_key, session_token),
        EnvironmentProvider(),
        SharedProfileProvider(profile),
        InstanceMetadataProvider(),
    ]


def resolve_region(
    *candidates: str | None,
    environ: Mapping[str, str] | None = None,
    profile: str | None = None,
) -> str:
    """First non-empty of: candidates, AWS_REGION/AWS_DEFAULT_REGION, profile region."""
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()

    environ = os.environ if environ is None else environ
    for key in ("AWS_REGION", "AWS_DEFAULT_REGION"):
        value = environ.get(key, "").strip()
        if value:
            return value

    try:
        region = BotocoreSession(profile=profile).get_config_variable("region")
    except ProfileNotFound:
        region = None
    return (region or "").strip()


class CredentialChain:
    def __init__(self, providers: Sequence[CredentialProvider]) -> None:
        self.providers = list(providers)

    def resolve(self, region: str) -> Credentials:
        if not region:
            raise AuthenticationUnavailable(
                "No region configured (use --region, AWS_REGION or a full function ARN)"
            )
        for provider in self.providers:
            found = provider.load()
            if found is None:
                continue
            logger.info("Using credentials from %s provider", provider.name)
            return found.with_region(region)
        tried = ", ".join(provider.name for provider in self.providers)
        raise AuthenticationUnavailable(f"No credentials found (tried: {tried})")
