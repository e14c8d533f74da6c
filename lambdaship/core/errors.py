"""
Error taxonomy for the build-package-deploy pipeline.

Every stage raises a subclass of LambdashipError. The pipeline wraps the
first failure in PipelineFailed together with the stage it happened in.
"""

from __future__ import annotations


class LambdashipError(Exception):
    """Base exception class for pipeline failures."""

    pass


# ===========================================
# Resolution
# ===========================================


class UnsupportedTarget(LambdashipError):
    """Raised when an architecture/runtime combination has no known image."""

    def __init__(self, target: str, supported: list[str] | None = None):
        self.target = target
        self.supported = list(supported or [])
        detail = f"Unsupported target: {target}"
        if self.supported:
            detail += f" (supported: {', '.join(self.supported)})"
        super().__init__(detail)


class InvalidFunctionIdentifier(LambdashipError):
    """Raised when the function identifier is empty."""

    pass


class AuthenticationUnavailable(LambdashipError):
    """Raised when no credential provider yields usable credentials."""

    pass


# ===========================================
# Build environment
# ===========================================


class EnvironmentUnavailable(LambdashipError):
    """Raised when the build container cannot be started or mounted."""

    pass


class BuildFailed(LambdashipError):
    """Raised when the build container exits non-zero."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"Build container exited with status {exit_code}")


class ArtifactMissing(LambdashipError):
    """Raised when a successful build left no binary at the expected path."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Build succeeded but no binary was found at {path}")


# ===========================================
# Packaging
# ===========================================


class SourceBinaryUnreadable(LambdashipError):
    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot read built binary {path}: {cause}")


class ArchiveWriteFailed(LambdashipError):
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to write deployment archive: {cause}")


# ===========================================
# Deployment
# ===========================================


class DeploymentError(LambdashipError):
    """Error returned by the function platform."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        cause: Exception | None = None,
        code_updated: bool = False,
    ):
        self.code = code
        self.cause = cause
        # True once UpdateFunctionCode was accepted: the remote draft no longer
        # matches the last published version.
        self.code_updated = code_updated
        super().__init__(message)


class FunctionNotFound(DeploymentError):
    pass


class PayloadTooLarge(DeploymentError):
    pass


class PermissionDenied(DeploymentError):
    pass


class TransientNetworkError(DeploymentError):
    """Connection-level failure. The only deployment error that is retried."""

    pass


def retry_publish_hint(function: str) -> str:
    return (
        "The function code has already been updated remotely; "
        f"retry with `lambdaship publish {function}` instead of re-running the deploy."
    )


class PublishFailed(DeploymentError):
    """Code update succeeded but the publish call did not."""

    def __init__(self, function: str, cause: Exception):
        self.function = function
        super().__init__(
            f"Publishing a new version of {function} failed: {cause}. {retry_publish_hint(function)}",
            code=getattr(cause, "code", ""),
            cause=cause,
            code_updated=True,
        )


# ===========================================
# Pipeline
# ===========================================


class PipelineFailed(LambdashipError):
    """Terminal failure of one pipeline run."""

    def __init__(self, stage: str, cause: LambdashipError):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {cause}")
