"""Deployment target resolution (architecture + runtime family -> build image)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from lambdaship.core.errors import UnsupportedTarget

DEFAULT_OUTPUT_DIR = "{code_dir}/target/lambda/release"


@dataclass(frozen=True)
class DeploymentTarget:
    architecture: str
    family: str

    @property
    def key(self) -> str:
        return f"{self.architecture}-{self.family}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class TargetSpec:
    """Concrete build environment for one target."""

    image: str
    triple: str
    output_dir_template: str = DEFAULT_OUTPUT_DIR

    def output_dir(self, code_dir: str) -> str:
        return self.output_dir_template.format(code_dir=code_dir.rstrip("/"))


_BUILTIN_TARGETS: dict[str, TargetSpec] = {
    "x86_64-linux-musl": TargetSpec(
        image="softprops/lambda-rust:latest",
        triple="x86_64-unknown-linux-musl",
    ),
    "aarch64-linux-musl": TargetSpec(
        image="rustserverless/lambda-rust:latest-arm64",
        triple="aarch64-unknown-linux-musl",
    ),
    "x86_64-linux-gnu": TargetSpec(
        image="rustserverless/lambda-rust:latest",
        triple="x86_64-unknown-linux-gnu",
    ),
    "aarch64-linux-gnu": TargetSpec(
        image="rustserverless/lambda-rust:latest-arm64",
        triple="aarch64-unknown-linux-gnu",
    ),
}

_ARCH_ALIASES = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64"}

DEFAULT_TARGET = "x86_64-linux-musl"


def supported_targets(extra_targets: Mapping[str, TargetSpec] | None = None) -> list[str]:
    keys = set(_BUILTIN_TARGETS)
    if extra_targets:
        keys.update(extra_targets)
    return sorted(keys)


def parse_target(text: str) -> DeploymentTarget:
    """Parse `<arch>-<family>` (e.g. `x86_64-linux-musl`)."""
    raw = (text or "").strip().lower()
    arch, sep, family = raw.partition("-")
    if not sep or arch == "" or family == "":
        raise UnsupportedTarget(text, supported_targets())
    return DeploymentTarget(architecture=_ARCH_ALIASES.get(arch, arch), family=family)


def resolve_target(
    target: DeploymentTarget,
    *,
    image_override: str | None = None,
    extra_targets: Mapping[str, TargetSpec] | None = None,
) -> TargetSpec:
    """Map a target to its build image and in-container output directory.

    Project-level mappings take precedence over the built-in table. An image
    override only swaps the image; the triple and output layout stay those of
    the resolved target, so an unknown target is still rejected.
    """
    spec = None
    if extra_targets:
        spec = extra_targets.get(target.key)
    if spec is None:
        spec = _BUILTIN_TARGETS.get(target.key)
    if spec is None:
        raise UnsupportedTarget(target.key, supported_targets(extra_targets))

    if image_override:
        spec = TargetSpec(
            image=image_override,
            triple=spec.triple,
            output_dir_template=spec.output_dir_template,
        )
    return spec


def target_specs_from_config(raw: Mapping[str, object] | None) -> dict[str, TargetSpec]:
    """Build extra target mappings from the `targets:` table of the project config."""
    specs: dict[str, TargetSpec] = {}
    for key, value in (raw or {}).items():
        if not isinstance(value, Mapping):
            raise ValueError(f"targets.{key} must be a mapping")
        image = str(value.get("image", "")).strip()
        triple = str(value.get("triple", "")).strip()
        if image == "" or triple == "":
            raise ValueError(f"targets.{key} requires both 'image' and 'triple'")
        specs[str(parse_target(str(key)))] = TargetSpec(
            image=image,
            triple=triple,
            output_dir_template=str(value.get("output_dir", DEFAULT_OUTPUT_DIR)),
        )
    return specs
