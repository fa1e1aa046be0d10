"""Container image assembly descriptor.

Describes how the installed application is wrapped into a runnable image:
base runtime, target name and tags, runtime flags, exposed ports, the
non-root identity and the OCI labels. The descriptor is always derived from
the live ``pyproject.toml``, so every build sees the current name and
version.
"""

import json
import tomllib
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BASE_IMAGE = "gcr.io/distroless/python3-debian12"
# Must ship the same minor Python version as the distroless runtime.
DEFAULT_BUILDER_IMAGE = "python:3.11-slim-bookworm"
DEFAULT_TARGET_IMAGE = "your-docker-registry.example.org/zeta/testing/testfachdienst"
DEFAULT_PORTS = (8080, 8081)
DEFAULT_USER = "65532:65532"
DEFAULT_WORKING_DIRECTORY = "/app"
SITE_PACKAGES = "/app/site-packages"
LATEST_TAG = "latest"

TITLE_LABEL = "org.opencontainers.image.title"
VERSION_LABEL = "org.opencontainers.image.version"
CREATED_LABEL = "org.opencontainers.image.created"


class ImageTarget(str, Enum):
    """Where the built image goes."""

    REGISTRY = "registry"
    DOCKER = "docker"
    TAR = "tar"


def default_runtime_env() -> Dict[str, str]:
    """Runtime flags baked into the image as environment variables."""
    return {
        "PYTHONDONTWRITEBYTECODE": "1",
        "PYTHONUNBUFFERED": "1",
        "TESTFACHDIENST_CONTAINER_SUPPORT": "true",
        "TESTFACHDIENST_MAX_RAM_PERCENTAGE": "75.0",
        "TESTFACHDIENST_EXIT_ON_OUT_OF_MEMORY": "true",
        "TESTFACHDIENST_MEMORY_POLICY_ENABLED": "true",
    }


def read_project_metadata(root: Path) -> Tuple[str, str]:
    """Read ``(name, version)`` from ``pyproject.toml`` below ``root``."""
    pyproject = root / "pyproject.toml"
    with pyproject.open("rb") as fh:
        data = tomllib.load(fh)

    project = data.get("project") or {}
    name = project.get("name")
    version = project.get("version")
    if not name or not version:
        raise ValueError(f"{pyproject} must declare project.name and project.version")
    return name, version


class ImageDescriptor(BaseModel):
    """Inputs that fully determine the produced container image."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    base_image: str = DEFAULT_BASE_IMAGE
    builder_image: str = DEFAULT_BUILDER_IMAGE
    target_image: str = DEFAULT_TARGET_IMAGE
    tags: Tuple[str, ...] = ()
    ports: Tuple[int, ...] = DEFAULT_PORTS
    user: str = DEFAULT_USER
    working_directory: str = DEFAULT_WORKING_DIRECTORY
    runtime_env: Dict[str, str] = Field(default_factory=default_runtime_env)
    labels: Dict[str, str] = Field(default_factory=dict)
    entrypoint: Tuple[str, ...] = ("/usr/bin/python3", "-m", "testfachdienst.src")
    creation_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        version = data.get("version")
        if not data.get("tags") and version:
            data["tags"] = (version, LATEST_TAG)
        return data

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        if not v:
            raise ValueError("at least one port must be exposed")
        for port in v:
            if not 0 < port < 65536:
                raise ValueError(f"invalid port: {port}")
        if len(set(v)) != len(v):
            raise ValueError(f"duplicate ports: {v}")
        if sorted(v) != sorted(DEFAULT_PORTS):
            raise ValueError(f"image must expose exactly {DEFAULT_PORTS}, got {v}")
        return v

    @field_validator("user")
    @classmethod
    def validate_user(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) > 2 or not all(parts):
            raise ValueError(f"user must be 'uid' or 'uid:gid', got {v!r}")
        for part in parts:
            if part == "root" or (part.isdigit() and int(part) == 0):
                raise ValueError("image must not run as root")
        if v != DEFAULT_USER:
            raise ValueError(f"image must run as {DEFAULT_USER}, got {v!r}")
        return v

    @field_validator("working_directory")
    @classmethod
    def validate_working_directory(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("working directory must be absolute")
        return v

    @model_validator(mode="after")
    def validate_tags(self) -> "ImageDescriptor":
        if self.version not in self.tags:
            raise ValueError(f"tags must include the version {self.version!r}")
        if LATEST_TAG not in self.tags:
            raise ValueError(f"tags must include {LATEST_TAG!r}")
        return self

    @classmethod
    def from_project(
        cls,
        root: Path,
        now: Optional[datetime] = None,
        **overrides: Any,
    ) -> "ImageDescriptor":
        """
        Build a descriptor from the project at ``root``.

        Reads ``pyproject.toml`` on every call; nothing is cached between
        invocations.

        Args:
            root: Project root containing pyproject.toml
            now: Creation timestamp (defaults to the current time)
            **overrides: Field overrides, e.g. ``target_image``

        Returns:
            ImageDescriptor for the current project state
        """
        name, version = read_project_metadata(root)
        created = now or datetime.now(timezone.utc)

        labels = {
            TITLE_LABEL: name,
            VERSION_LABEL: version,
            CREATED_LABEL: created.isoformat(),
        }
        labels.update(overrides.pop("labels", {}))

        return cls(
            name=name,
            version=version,
            labels=labels,
            creation_time=created,
            **overrides,
        )

    def image_references(self) -> List[str]:
        """Fully qualified ``image:tag`` references, in tag order."""
        return [f"{self.target_image}:{tag}" for tag in self.tags]

    @property
    def uid(self) -> int:
        return int(self.user.split(":")[0])

    def render_dockerfile(self) -> str:
        """Render a multi-stage Dockerfile for this descriptor."""
        lines = [
            "# syntax=docker/dockerfile:1",
            f"FROM {self.builder_image} AS builder",
            "WORKDIR /build",
            "COPY . .",
            f"RUN pip install --no-cache-dir --target {SITE_PACKAGES} .",
            "",
            f"FROM {self.base_image}",
            f"WORKDIR {self.working_directory}",
            f"COPY --from=builder {SITE_PACKAGES} {SITE_PACKAGES}",
            f"ENV PYTHONPATH={SITE_PACKAGES}",
        ]

        for key in sorted(self.runtime_env):
            lines.append(f"ENV {key}={json.dumps(self.runtime_env[key])}")

        for port in self.ports:
            lines.append(f"EXPOSE {port}")

        for key in sorted(self.labels):
            lines.append(f"LABEL {json.dumps(key)}={json.dumps(self.labels[key])}")

        lines.append(f"USER {self.user}")
        lines.append(f"ENTRYPOINT {json.dumps(list(self.entrypoint))}")
        return "\n".join(lines) + "\n"

    def docker_command(
        self,
        target: ImageTarget,
        dockerfile: Path,
        context: Path,
        tar_path: Optional[Path] = None,
    ) -> List[str]:
        """
        Build the ``docker buildx build`` invocation for ``target``.

        Args:
            target: registry (push), docker (load into daemon) or tar
            dockerfile: Path of the rendered Dockerfile
            context: Build context directory
            tar_path: Output file, required for the tar target

        Returns:
            Argument vector
        """
        command = ["docker", "buildx", "build", "--file", str(dockerfile)]
        for reference in self.image_references():
            command.extend(["--tag", reference])

        if target is ImageTarget.REGISTRY:
            command.append("--push")
        elif target is ImageTarget.DOCKER:
            command.append("--load")
        elif target is ImageTarget.TAR:
            if tar_path is None:
                raise ValueError("tar target requires an output path")
            command.extend(["--output", f"type=docker,dest={tar_path}"])

        command.append(str(context))
        return command
