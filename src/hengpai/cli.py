from __future__ import annotations

import argparse
import logging
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .config import OUTPUT_EPUB, OUTPUT_KINDS, ConversionConfig, load_config
from .core import SOURCE_SUFFIXES, ConversionResult, convert_file
from .errors import ConversionError
from .logging_utils import configure_logging
from .script import ScriptConverter, build_script_converter

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_converted"


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("hengpai")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"hengpai {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description=(
            "EPUB/PDF → horizontal traditional-Chinese EPUB, or a single Markdown document."
        ),
    )
    _add_version_flag(ap)
    ap.add_argument(
        "input_path",
        help="Path to an .epub/.pdf file or a directory containing them",
    )
    ap.add_argument(
        "-f",
        "--format",
        dest="output_kind",
        choices=list(OUTPUT_KINDS),
        default=None,
        help="Output format: restyled 'epub' (default) or flattened 'md'.",
    )
    ap.add_argument(
        "-l",
        "--line-height",
        default=None,
        help="CSS line height applied to every element (default: 1.2).",
    )
    ap.add_argument(
        "-o",
        "--output-name",
        help="Optional output file name (same folder as input; single files only)",
    )
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML file with a [hengpai] table. Defaults to $HENGPAI_CONFIG when set.",
    )
    ap.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Convert chapters with this many threads (output order is unchanged).",
    )
    ap.add_argument(
        "--no-opencc",
        action="store_true",
        help="Skip OpenCC and use the built-in simplified → traditional table.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    return ap


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def output_path_for(inp_path: Path, output_kind: str, output_name: str | None = None) -> Path:
    if output_name:
        out_name_path = Path(output_name)
        if out_name_path.parent not in (Path("."), Path("")):
            raise ValueError(
                "Output name must not contain directory components; "
                "it is saved next to the input."
            )
        return inp_path.with_name(out_name_path.name)
    return inp_path.with_name(f"{inp_path.stem}{OUTPUT_SUFFIX}.{output_kind}")


def _collect_inputs(inp_path: Path) -> list[Path]:
    if inp_path.is_dir():
        inputs = sorted(
            p
            for p in inp_path.iterdir()
            if p.suffix.lower() in SOURCE_SUFFIXES and not p.stem.endswith(OUTPUT_SUFFIX)
        )
        if not inputs:
            raise FileNotFoundError(f"No .epub or .pdf files found in directory: {inp_path}")
        return inputs
    return [inp_path]


def _convert_with_progress(
    inp_path: Path,
    config: ConversionConfig,
    converter: ScriptConverter,
    console: Console,
) -> ConversionResult:
    progress = Progress(
        TextColumn("{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TextColumn("{task.fields[detail]}", justify="left"),
        console=console,
        transient=True,
        disable=not console.is_terminal,
    )
    with progress:
        task = progress.add_task(inp_path.name, total=None, detail="")

        def _report(done: int, total: int, label: str) -> None:
            progress.update(task, completed=done, total=total, detail=Path(label).name)

        return convert_file(inp_path, config, converter=converter, progress=_report)


def _print_summary(console: Console, output_path: Path, result: ConversionResult, config: ConversionConfig) -> None:
    detail = f"format: {result.output_kind.upper()} | size: {format_file_size(result.size)}"
    if result.output_kind == OUTPUT_EPUB:
        detail = f"{detail} | line height: {config.line_height}"
    console.print(f"[green]✓[/green] {output_path.name}  ({detail})")


def _run(args: argparse.Namespace, console: Console) -> int:
    inp_path = Path(args.input_path)
    if not inp_path.exists():
        raise FileNotFoundError(f"Input path not found: {inp_path}")
    if inp_path.is_dir() and args.output_name:
        raise ValueError("Output name cannot be used when processing a directory.")

    config = load_config(args.config).with_overrides(
        output_kind=args.output_kind,
        line_height=args.line_height,
        workers=args.workers,
    )
    converter = build_script_converter(prefer_external=not args.no_opencc)

    for source in _collect_inputs(inp_path):
        output_path = output_path_for(source, config.output_kind, args.output_name)
        result = _convert_with_progress(source, config, converter, console)
        output_path.write_bytes(result.data)
        _print_summary(console, output_path, result, config)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    configure_logging(debug=args.debug)
    console = Console()
    try:
        return _run(args, console)
    except (ConversionError, ValueError, FileNotFoundError) as exc:
        logger.debug("Conversion aborted", exc_info=True)
        Console(stderr=True).print(f"[red]Conversion failed:[/red] {exc}", markup=True, highlight=False)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
