"""
Toolchain Payload - command line entry point.

Packs files from disk into a bundle and writes it out as a zip archive,
a plaintext dump, a directory tree, or an S3 upload. Pipelines normally
drive Bundle directly; this tool covers packaging after the fact and
inspection of what a payload would contain.

Usage:
    toolchain-payload pack --root build/ --prefix out/ --output payload.zip
    toolchain-payload pack a.mlir run.sh --format plain --output -
    toolchain-payload pack --root build/ --plain-dir staging/
    toolchain-payload pack --root build/ --s3-name kernel-1234

Configuration defaults come from environment variables (see config.py);
command line flags override them.

Invariants:
    - Input files are added in sorted order of their logical names
    - Two inputs never share a logical name; a collision fails the run
    - Exit code is 0 only if every requested output was fully written
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import json_log_formatter

from ._version import __version__
from .bundle import Bundle, create_bundle
from .config import BundleFormat, PayloadConfig
from .errors import PayloadError
from .sinks import S3BundleSink

logger = logging.getLogger(__name__)


def setup_logging(config: PayloadConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Payload configuration
        verbose: Force DEBUG level
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # stdout may carry the payload itself
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def collect_inputs(files: Sequence[str], root: Optional[str]) -> List[Tuple[str, Path]]:
    """Resolve CLI inputs to (logical name, path) pairs.

    Files are named relative to ``root`` when given, otherwise by their
    file name. With no files, every regular file under ``root`` is taken.
    """
    root_path = Path(root) if root else None
    inputs: List[Tuple[str, Path]] = []

    if not files and root_path is not None:
        for path in root_path.rglob("*"):
            if path.is_file():
                inputs.append((path.relative_to(root_path).as_posix(), path))
    else:
        for item in files:
            path = Path(item)
            if root_path is not None and not path.is_absolute():
                path = root_path / path
            if root_path is not None and path.is_relative_to(root_path):
                name = path.relative_to(root_path).as_posix()
            else:
                name = path.name
            inputs.append((name, path))

    return sorted(inputs)


def fill_bundle(bundle: Bundle, inputs: Sequence[Tuple[str, Path]]) -> List[str]:
    """Copy input files into the bundle.

    Each logical name is filled from one input only. Later inputs with a
    name already taken are rejected instead of being appended.

    Returns:
        Names of inputs that could not be read or whose name collided
    """
    failed = []
    sources = {}
    for name, path in inputs:
        if name in sources:
            logger.error(f"Input file {path} has the same name '{name}' as {sources[name]}")
            failed.append(name)
            continue
        sources[name] = path
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Unable to read input file {path}: {e}")
            failed.append(name)
            continue
        bundle.get_file(name).write(data)
    return failed


def _write_output(bundle: Bundle, output: str) -> bool:
    if output == "-":
        return bundle.write(sys.stdout.buffer)
    out_path = Path(output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("wb") as f:
        ok = bundle.write(f)
    if ok:
        logger.info(f"Wrote payload to {out_path}")
    return ok


async def _upload(bundle: Bundle, config: PayloadConfig, name: str) -> bool:
    async with S3BundleSink(config.s3) as sink:
        info = await sink.upload(bundle, name)
    print(f"Uploaded s3://{config.s3.bucket}/{info.s3_key} ({info.size_bytes} bytes, {info.checksum})")
    return True


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolchain-payload",
        description="Package build artifacts into a deterministic payload",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pack = subparsers.add_parser("pack", help="Pack files into a payload")
    pack.add_argument("files", nargs="*", help="Files to pack (default: everything under --root)")
    pack.add_argument("--root", help="Directory logical names are relative to")
    pack.add_argument("--prefix", help="Namespace prepended to every entry")
    pack.add_argument("--payload-version", help="Version recorded in the manifest")
    pack.add_argument("--format", choices=[f.value for f in BundleFormat], help="Output format")
    pack.add_argument("-o", "--output", help="Output file, or '-' for stdout")
    pack.add_argument("--plain-dir", help="Also write the payload as a directory tree")
    pack.add_argument("--s3-name", help="Also upload the zip archive to S3 under this name")
    pack.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = PayloadConfig.from_env()
    except PayloadError as e:
        print(f"Invalid configuration: {e.message}", file=sys.stderr)
        sys.exit(1)

    bundle_config = config.bundle
    if args.prefix is not None:
        bundle_config = dataclasses.replace(bundle_config, prefix=args.prefix)
    if args.payload_version is not None:
        bundle_config = dataclasses.replace(bundle_config, version=args.payload_version)
    if args.format is not None:
        bundle_config = dataclasses.replace(bundle_config, format=BundleFormat(args.format))
    config = dataclasses.replace(config, bundle=bundle_config)

    setup_logging(config, verbose=args.verbose)
    config.log_config()

    if not (args.output or args.plain_dir or args.s3_name):
        parser.error("pack needs at least one of --output, --plain-dir, --s3-name")
    if not args.files and not args.root:
        parser.error("pack needs input files or --root")

    bundle = create_bundle(config)
    failed = fill_bundle(bundle, collect_inputs(args.files, args.root))
    ok = not failed

    if args.plain_dir:
        ok = bundle.write_plain_dir(args.plain_dir).success and ok

    if args.output:
        ok = _write_output(bundle, args.output) and ok

    if args.s3_name:
        try:
            ok = asyncio.run(_upload(bundle, config, args.s3_name)) and ok
        except PayloadError as e:
            logger.error(e.message)
            ok = False

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
