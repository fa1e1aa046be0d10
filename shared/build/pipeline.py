"""Build pipeline: compile, style check, test, coverage, containerize.

Stages run strictly in order. The first stage that exits non-zero aborts
the pipeline, so coverage reports only exist for a green test run and no
image is built from code that failed the style check or the tests.
"""

import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import structlog

from shared.build.image import ImageDescriptor, ImageTarget

logger = structlog.get_logger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

DEFAULT_PACKAGES = ("testfachdienst", "shared")


class PipelineError(RuntimeError):
    """Raised when a pipeline stage fails."""

    def __init__(self, stage: str, returncode: int):
        super().__init__(f"stage '{stage}' failed with exit code {returncode}")
        self.stage = stage
        self.returncode = returncode


@dataclass(frozen=True)
class CoverageReports:
    """Coverage report formats. XML and HTML are always on, CSV always off."""

    xml: bool = True
    html: bool = True
    csv: bool = False

    def __post_init__(self) -> None:
        if self.csv:
            raise ValueError("CSV coverage reports are disabled")
        if not (self.xml and self.html):
            raise ValueError("XML and HTML coverage reports are required")


class BuildPipeline:
    """Runs the build stages for the project at ``root``."""

    def __init__(
        self,
        root: Path,
        runner: Runner = subprocess.run,
        python: str = sys.executable,
        packages: Sequence[str] = DEFAULT_PACKAGES,
        tests_dir: str = "tests",
        report_dir: str = "build/reports",
        coverage: Optional[CoverageReports] = None,
    ):
        self.root = root
        self.runner = runner
        self.python = python
        self.packages = tuple(packages)
        self.tests_dir = tests_dir
        self.report_dir = Path(report_dir)
        self.coverage = coverage or CoverageReports()

    # ========================================================================
    # Stage definitions
    # ========================================================================

    def check_stages(self) -> List[Tuple[str, List[str]]]:
        """Stages of ``check`` in execution order."""
        cov_args = [f"--cov={package}" for package in self.packages]
        stages = [
            ("compile", [self.python, "-m", "compileall", "-q", *self.packages]),
            (
                "style",
                [self.python, "-m", "ruff", "check", "--no-fix", *self.packages, self.tests_dir],
            ),
            (
                "test",
                [self.python, "-m", "pytest", self.tests_dir, *cov_args, "--cov-report="],
            ),
        ]
        if self.coverage.xml:
            stages.append(
                (
                    "coverage-xml",
                    [self.python, "-m", "coverage", "xml", "-o", str(self.report_dir / "coverage.xml")],
                )
            )
        if self.coverage.html:
            stages.append(
                (
                    "coverage-html",
                    [self.python, "-m", "coverage", "html", "-d", str(self.report_dir / "html")],
                )
            )
        return stages

    # ========================================================================
    # Execution
    # ========================================================================

    def run_stage(self, name: str, command: List[str]) -> None:
        logger.info("pipeline_stage_started", stage=name, command=" ".join(command))
        result = self.runner(command, cwd=self.root)
        if result.returncode != 0:
            logger.error("pipeline_stage_failed", stage=name, returncode=result.returncode)
            raise PipelineError(name, result.returncode)
        logger.info("pipeline_stage_completed", stage=name)

    def check(self) -> List[str]:
        """Run compile, style, test and coverage stages; return the completed stage names."""
        completed = []
        for name, command in self.check_stages():
            self.run_stage(name, command)
            completed.append(name)
        return completed

    def write_dockerfile(self, descriptor: ImageDescriptor) -> Path:
        """Render the Dockerfile for ``descriptor``. Always rewritten."""
        path = self.root / "build" / "Dockerfile"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(descriptor.render_dockerfile())
        return path

    def containerize(
        self,
        target: ImageTarget,
        tar_path: Optional[Path] = None,
        target_image: Optional[str] = None,
    ) -> ImageDescriptor:
        """Build the image from a freshly computed descriptor."""
        overrides = {"target_image": target_image} if target_image else {}
        descriptor = ImageDescriptor.from_project(self.root, **overrides)

        if target is ImageTarget.TAR and tar_path is None:
            tar_path = self.root / "build" / f"{descriptor.name}.tar"

        dockerfile = self.write_dockerfile(descriptor)
        command = descriptor.docker_command(target, dockerfile, self.root, tar_path)
        self.run_stage("containerize", command)

        logger.info(
            "image_built",
            target=target.value,
            references=descriptor.image_references(),
        )
        return descriptor

    def run(
        self,
        target: ImageTarget,
        tar_path: Optional[Path] = None,
        target_image: Optional[str] = None,
    ) -> ImageDescriptor:
        """Full pipeline: ``check`` then ``containerize``."""
        self.check()
        return self.containerize(target, tar_path=tar_path, target_image=target_image)
