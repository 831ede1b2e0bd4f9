"""CLI entrypoint for smoothmap."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .export import format_export_lines, run_export
from .render import format_render_lines, run_render_map
from .util import ensure_directories, setup_logging
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("smoothmap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smoothmap",
        description="Smoothed isopleth and dasymetric maps from point, polygon or grid data.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    def add_input(p: argparse.ArgumentParser) -> None:
        p.add_argument("--input", required=True, type=Path, help="Vector file or raster .npz to smooth.")
        p.add_argument("--variable", default=None, help="Numeric column/layer to smooth.")

    smooth_p = subparsers.add_parser("smooth", help="Write raster, contour and region artifacts.")
    add_common(smooth_p)
    add_input(smooth_p)
    smooth_p.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output directory (defaults to paths.output_dir).",
    )
    smooth_p.add_argument(
        "--outputs",
        nargs="+",
        default=None,
        help="Subset of raster, contour, regions (iso/dasy accepted).",
    )

    render_p = subparsers.add_parser("render", help="Render the smoothed map as an image.")
    add_common(render_p)
    add_input(render_p)
    render_p.add_argument("--output", type=Path, default=None, help="Output image path.")
    render_p.add_argument("--title", default="", help="Map title.")

    validate_p = subparsers.add_parser("validate", help="Validate config and optional input file.")
    add_common(validate_p)
    validate_p.add_argument("--input", type=Path, default=None, help="Input file to check.")

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_smooth(
    cfg: AppConfig,
    *,
    input_path: Path,
    variable: str | None,
    output_dir: Path | None,
    outputs: Sequence[str] | None,
) -> int:
    report = run_export(
        cfg,
        input_path=input_path,
        variable=variable,
        output_dir=output_dir,
        outputs=outputs,
    )
    for line in format_export_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_render(
    cfg: AppConfig,
    *,
    input_path: Path,
    variable: str | None,
    output_path: Path | None,
    title: str,
) -> int:
    report = run_render_map(
        cfg,
        input_path=input_path,
        variable=variable,
        output_path=output_path,
        title=title,
    )
    for line in format_render_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_validate(cfg: AppConfig, *, input_path: Path | None) -> int:
    report = Validator(cfg).run(input_path=input_path)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "smooth":
        return _run_smooth(
            cfg,
            input_path=args.input,
            variable=args.variable,
            output_dir=args.output,
            outputs=args.outputs,
        )
    if command == "render":
        return _run_render(
            cfg,
            input_path=args.input,
            variable=args.variable,
            output_path=args.output,
            title=str(args.title),
        )
    if command == "validate":
        return _run_validate(cfg, input_path=args.input)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
