"""Command line entry point for the build pipeline.

Usage:
    python -m shared.build version
    python -m shared.build dockerfile
    python -m shared.build check
    python -m shared.build image --target docker
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from shared.build.image import ImageDescriptor, ImageTarget, read_project_metadata
from shared.build.pipeline import BuildPipeline, PipelineError
from shared.logging import configure_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m shared.build", description=__doc__.splitlines()[0])
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="Project root")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("version", help="Print the project version")
    subparsers.add_parser("dockerfile", help="Print the rendered Dockerfile")
    subparsers.add_parser("check", help="Compile, style check, test and write coverage reports")

    image = subparsers.add_parser("image", help="Run check, then build the container image")
    image.add_argument(
        "--target",
        choices=[t.value for t in ImageTarget],
        default=ImageTarget.DOCKER.value,
        help="registry (push), docker (load into daemon) or tar",
    )
    image.add_argument("--tar-path", type=Path, default=None, help="Output file for the tar target")
    image.add_argument("--image", default=None, help="Override the target image name")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    root = args.root.resolve()

    if args.command == "version":
        _, version = read_project_metadata(root)
        print(version)
        return 0

    if args.command == "dockerfile":
        sys.stdout.write(ImageDescriptor.from_project(root).render_dockerfile())
        return 0

    configure_logging(log_level="INFO", json_logs=False, service_name="build")
    pipeline = BuildPipeline(root)

    try:
        if args.command == "check":
            pipeline.check()
        else:
            pipeline.run(ImageTarget(args.target), tar_path=args.tar_path, target_image=args.image)
    except PipelineError as e:
        logger.error("pipeline_failed", stage=e.stage, returncode=e.returncode)
        return e.returncode or 1

    logger.info("pipeline_succeeded", command=args.command)
    return 0


if __name__ == "__main__":
    sys.exit(main())
