"""
Unit tests for the build pipeline.

Stages are executed through an injected runner, so no tool is actually
invoked. Tests cover stage order, fail-fast behaviour, coverage report
formats and containerization.
"""

import subprocess
from pathlib import Path
from typing import List

import pytest

from shared.build.__main__ import main as build_main
from shared.build.image import ImageTarget
from shared.build.pipeline import BuildPipeline, CoverageReports, PipelineError

REPO_ROOT = Path(__file__).resolve().parents[2]


class RecordingRunner:
    """Runner double recording commands; fails the stage whose command contains ``fail_on``."""

    def __init__(self, fail_on: str = None, returncode: int = 1):
        self.commands: List[List[str]] = []
        self.fail_on = fail_on
        self.returncode = returncode

    def __call__(self, command, cwd=None):
        self.commands.append(list(command))
        failed = self.fail_on is not None and self.fail_on in command
        return subprocess.CompletedProcess(command, self.returncode if failed else 0)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "testfachdienst"\nversion = "0.1.3"\n'
    )
    return tmp_path


class TestCheckStages:

    def test_stages_run_in_order(self, project_root):
        runner = RecordingRunner()
        pipeline = BuildPipeline(project_root, runner=runner, python="python")

        completed = pipeline.check()

        assert completed == ["compile", "style", "test", "coverage-xml", "coverage-html"]
        assert len(runner.commands) == 5

    def test_style_check_does_not_autofix(self, project_root):
        pipeline = BuildPipeline(project_root, runner=RecordingRunner(), python="python")
        style = dict(pipeline.check_stages())["style"]

        assert style[:4] == ["python", "-m", "ruff", "check"]
        assert "--no-fix" in style

    def test_style_violation_fails_build(self, project_root):
        runner = RecordingRunner(fail_on="ruff")
        pipeline = BuildPipeline(project_root, runner=runner, python="python")

        with pytest.raises(PipelineError) as exc_info:
            pipeline.check()

        assert exc_info.value.stage == "style"
        assert exc_info.value.returncode != 0
        # tests and coverage never ran
        assert not any("pytest" in command for command in runner.commands)

    def test_test_failure_blocks_coverage_reports(self, project_root):
        runner = RecordingRunner(fail_on="pytest")
        pipeline = BuildPipeline(project_root, runner=runner, python="python")

        with pytest.raises(PipelineError) as exc_info:
            pipeline.check()

        assert exc_info.value.stage == "test"
        assert not any("coverage" in command for command in runner.commands)

    def test_coverage_reports_follow_tests(self, project_root):
        runner = RecordingRunner()
        BuildPipeline(project_root, runner=runner, python="python").check()

        tools = [command[2] for command in runner.commands]
        assert tools.index("pytest") < tools.index("coverage")

    def test_test_stage_collects_coverage_without_reports(self, project_root):
        pipeline = BuildPipeline(project_root, runner=RecordingRunner(), python="python")
        test = dict(pipeline.check_stages())["test"]

        assert "--cov=testfachdienst" in test
        assert "--cov=shared" in test
        assert "--cov-report=" in test

    def test_xml_and_html_reports_are_written(self, project_root):
        pipeline = BuildPipeline(project_root, runner=RecordingRunner(), python="python")
        stages = dict(pipeline.check_stages())

        assert stages["coverage-xml"][-2:] == ["-o", str(Path("build/reports/coverage.xml"))]
        assert stages["coverage-html"][-2:] == ["-d", str(Path("build/reports/html"))]


class TestProjectTree:
    """Runs real stages against this repository."""

    def test_style_stage_passes(self):
        pytest.importorskip("ruff")
        pipeline = BuildPipeline(REPO_ROOT)

        pipeline.run_stage("style", dict(pipeline.check_stages())["style"])


class TestCoverageReports:

    def test_defaults_enable_xml_and_html_only(self):
        reports = CoverageReports()
        assert reports.xml is True
        assert reports.html is True
        assert reports.csv is False

    def test_csv_cannot_be_enabled(self):
        with pytest.raises(ValueError):
            CoverageReports(csv=True)

    @pytest.mark.parametrize("kwargs", [{"xml": False}, {"html": False}])
    def test_xml_and_html_cannot_be_disabled(self, kwargs):
        with pytest.raises(ValueError):
            CoverageReports(**kwargs)


class TestContainerize:

    def test_dockerfile_is_rewritten_every_build(self, project_root):
        pipeline = BuildPipeline(project_root, runner=RecordingRunner(), python="python")

        pipeline.containerize(ImageTarget.DOCKER)
        dockerfile = project_root / "build" / "Dockerfile"
        assert '"0.1.3"' in dockerfile.read_text()

        (project_root / "pyproject.toml").write_text(
            '[project]\nname = "testfachdienst"\nversion = "0.1.4"\n'
        )
        descriptor = pipeline.containerize(ImageTarget.DOCKER)

        assert descriptor.tags == ("0.1.4", "latest")
        assert '"0.1.4"' in dockerfile.read_text()

    def test_tar_target_defaults_to_build_directory(self, project_root):
        runner = RecordingRunner()
        BuildPipeline(project_root, runner=runner, python="python").containerize(ImageTarget.TAR)

        expected = project_root / "build" / "testfachdienst.tar"
        assert f"type=docker,dest={expected}" in runner.commands[-1]

    def test_run_does_not_containerize_after_failed_check(self, project_root):
        runner = RecordingRunner(fail_on="pytest")
        pipeline = BuildPipeline(project_root, runner=runner, python="python")

        with pytest.raises(PipelineError):
            pipeline.run(ImageTarget.REGISTRY)

        assert not any(command[:1] == ["docker"] for command in runner.commands)
        assert not (project_root / "build" / "Dockerfile").exists()


class TestBuildCli:

    def test_version_command_prints_project_version(self, project_root, capsys):
        assert build_main(["--root", str(project_root), "version"]) == 0
        assert capsys.readouterr().out.strip() == "0.1.3"

    def test_dockerfile_command_prints_dockerfile(self, project_root, capsys):
        assert build_main(["--root", str(project_root), "dockerfile"]) == 0
        output = capsys.readouterr().out
        assert "EXPOSE 8080" in output
        assert "USER 65532:65532" in output
