"""
Lambda deployment client.

A deploy is two sequential calls against the function:

1. UpdateFunctionCode replaces the unpublished ($LATEST) code.
2. PublishVersion snapshots that code as a new immutable version.

Only connection-level failures (and throttling) are retried. A failure in
step 2 after step 1 succeeded is reported as PublishFailed, except an
exhausted TransientNetworkError, which keeps its type. Every error raised
after step 1 was accepted carries code_updated=True.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    WaiterError,
)

from lambdaship.core.credentials import Credentials
from lambdaship.core.errors import (
    DeploymentError,
    FunctionNotFound,
    PayloadTooLarge,
    PermissionDenied,
    PublishFailed,
    TransientNetworkError,
    retry_publish_hint,
)
from lambdaship.core.package import Artifact

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND_CODES = frozenset({"ResourceNotFoundException"})
TOO_LARGE_CODES = frozenset({"RequestEntityTooLargeException", "CodeStorageExceededException"})
PERMISSION_CODES = frozenset(
    {
        "AccessDeniedException",
        "AccessDenied",
        "UnrecognizedClientException",
        "InvalidSignatureException",
        "ExpiredTokenException",
    }
)
THROTTLING_CODES = frozenset({"TooManyRequestsException", "ThrottlingException"})
CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


@dataclass(frozen=True)
class DeployedVersion:
    version: str
    function_arn: str
    function_name: str = ""
    code_sha256: str = ""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows `attempt` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def translate_error(exc: Exception, function: str) -> DeploymentError:
    """Map a botocore exception onto the deployment error taxonomy."""
    if isinstance(exc, DeploymentError):
        return exc
    if isinstance(exc, CONNECTION_ERRORS):
        return TransientNetworkError(f"Network error talking to Lambda: {exc}", cause=exc)
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        message = str(error.get("Message", "")) or str(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in NOT_FOUND_CODES:
            return FunctionNotFound(f"Function not found: {function}", code=code, cause=exc)
        if code in TOO_LARGE_CODES or status == 413:
            return PayloadTooLarge(f"Archive rejected as too large: {message}", code=code, cause=exc)
        if code in PERMISSION_CODES or status == 403:
            return PermissionDenied(f"Permission denied: {message}", code=code, cause=exc)
        if code in THROTTLING_CODES or status == 429:
            return TransientNetworkError(f"Throttled by Lambda: {message}", code=code, cause=exc)
        return DeploymentError(f"Lambda returned {code or 'an error'}: {message}", code=code, cause=exc)
    return DeploymentError(f"Unexpected deployment error: {exc}", cause=exc)


def create_lambda_client(credentials: Credentials, *, connect_timeout: float = 10, read_timeout: float = 120):
    """Create a Lambda client; botocore's own retries are disabled."""
    return boto3.client(
        "lambda",
        region_name=credentials.region,
        aws_access_key_id=credentials.access_key,
        aws_secret_access_key=credentials.secret_key,
        aws_session_token=credentials.session_token,
        config=Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"total_max_attempts": 1, "mode": "standard"},
        ),
    )


class LambdaDeployer:
    """Uploads an archive to a function and publishes it as a new version."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        client: Any = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.credentials = credentials
        self.client = client if client is not None else create_lambda_client(credentials)
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    def _call(self, description: str, function: str, operation: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as exc:
                error = translate_error(exc, function)
                if isinstance(error, TransientNetworkError) and attempt < self.retry.max_attempts:
                    delay = self.retry.delay_for(attempt)
                    logger.warning(
                        "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                        description,
                        attempt,
                        self.retry.max_attempts,
                        delay,
                        error,
                    )
                    self._sleep(delay)
                    attempt += 1
                    continue
                if isinstance(error, TransientNetworkError):
                    logger.error("%s failed after %d attempts: %s", description, attempt, error)
                if error is exc:
                    raise
                raise error from exc

    def update_code(self, function: str, artifact: Artifact) -> dict:
        logger.info("Uploading %d bytes to %s", artifact.size, function)
        response = self._call(
            "UpdateFunctionCode",
            function,
            lambda: self.client.update_function_code(
                FunctionName=function,
                ZipFile=artifact.data,
                Publish=False,
            ),
        )
        try:
            self._call("Waiting for code update", function, lambda: self._wait_updated(function))
        except DeploymentError as exc:
            raise _after_code_update(
                exc,
                "UpdateFunctionCode was accepted, so the unpublished code of "
                f"{function} may already hold the new archive",
            ) from exc
        return response

    def _wait_updated(self, function: str) -> None:
        waiter = self.client.get_waiter("function_updated_v2")
        try:
            waiter.wait(FunctionName=function)
        except WaiterError as exc:
            last = getattr(exc, "last_response", None) or {}
            if "Error" in last:
                # GetFunction itself failed (e.g. no lambda:GetFunction permission).
                raise translate_error(ClientError(last, "GetFunction"), function) from exc
            reason = last.get("Configuration", {}).get("LastUpdateStatusReason") or str(exc)
            raise DeploymentError(f"Code update did not complete: {reason}", cause=exc) from exc

    def publish(self, function: str, *, code_sha256: str | None = None) -> DeployedVersion:
        params: dict[str, Any] = {"FunctionName": function}
        if code_sha256:
            params["CodeSha256"] = code_sha256
        response = self._call(
            "PublishVersion",
            function,
            lambda: self.client.publish_version(**params),
        )
        version = str(response.get("Version", ""))
        if version == "":
            raise DeploymentError(f"PublishVersion for {function} returned no version")
        deployed = DeployedVersion(
            version=version,
            function_arn=str(response.get("FunctionArn", "")),
            function_name=str(response.get("FunctionName", "")),
            code_sha256=str(response.get("CodeSha256", "")),
        )
        logger.info("Published %s version %s", deployed.function_name or function, version)
        return deployed

    def deploy(self, function: str, artifact: Artifact) -> DeployedVersion:
        updated = self.update_code(function, artifact)
        try:
            return self.publish(function, code_sha256=updated.get("CodeSha256"))
        except TransientNetworkError as exc:
            # Retries are exhausted; keep the type so callers can tell it is transient.
            raise _after_code_update(exc, retry_publish_hint(function)) from exc
        except DeploymentError as exc:
            raise PublishFailed(function, exc) from exc


def _after_code_update(error: DeploymentError, note: str) -> DeploymentError:
    """Same error class, flagged and annotated as raised after the code changed."""
    return type(error)(
        f"{error}. {note}",
        code=error.code,
        cause=error.cause if error.cause is not None else error,
        code_updated=True,
    )
