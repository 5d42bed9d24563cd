"""CLI entry point for b2fs."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from prometheus_client import start_http_server

from b2fs import metrics
from b2fs.adapter import B2Adapter
from b2fs.config import B2FSConfig, load_config
from b2fs.errors import B2FSError
from b2fs.interface import ObjectStorageAdapter
from b2fs.logging_config import configure_logging
from b2fs.models import AUTO_CONTENT_TYPE, WriteOptions
from b2fs.store import create_store_client
from b2fs.upload import LargeFileUploader

logger = logging.getLogger("b2fs")

EXIT_CONFIG_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_STORE_ERROR = 3


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="b2fs",
        description="b2fs - filesystem-style access to a Backblaze B2 bucket",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("b2fs.yaml"),
        help="Path to YAML configuration file (default: b2fs.yaml)",
    )
    parser.add_argument(
        "--prefix",
        type=str,
        default=None,
        help="Base path inside the bucket (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("ls", help="List a directory")
    ls.add_argument("directory", nargs="?", default="")
    ls.add_argument("--flat", action="store_true", help="Only list direct children")

    st = sub.add_parser("stat", help="Show metadata of a file")
    st.add_argument("path")

    put = sub.add_parser("put", help="Upload a local file")
    put.add_argument("local", type=Path)
    put.add_argument("remote")
    put.add_argument("--mimetype", default=AUTO_CONTENT_TYPE)

    get = sub.add_parser("get", help="Download a file")
    get.add_argument("remote")
    get.add_argument("local", type=Path)

    cp = sub.add_parser("cp", help="Copy a file server-side")
    cp.add_argument("src")
    cp.add_argument("dst")

    mv = sub.add_parser("mv", help="Rename a file")
    mv.add_argument("src")
    mv.add_argument("dst")

    rm = sub.add_parser("rm", help="Delete a file")
    rm.add_argument("path")

    rmdir = sub.add_parser("rmdir", help="Delete every file under a directory")
    rmdir.add_argument("directory")

    return parser.parse_args(argv)


def _print_entry(entry) -> None:
    if entry.type == "dir":
        print(f"{'DIR':>12}  {'':19}  {entry.path}/")
    else:
        print(f"{entry.size:>12}  {entry.timestamp:>19}  {entry.path}  {entry.mimetype}")


async def run_command(args: argparse.Namespace, adapter: ObjectStorageAdapter) -> int:
    """Execute one subcommand against ``adapter`` and return the exit code."""
    command = args.command

    if command == "ls":
        for entry in await adapter.list_contents(args.directory, recursive=not args.flat):
            _print_entry(entry)
        return 0

    if command == "stat":
        entry = await adapter.get_metadata(args.path)
        if entry is None:
            logger.error("No such file: %s", args.path)
            return EXIT_NOT_FOUND
        _print_entry(entry)
        return 0

    if command == "put":
        stat = args.local.stat()
        options = WriteOptions(mimetype=args.mimetype, timestamp=int(stat.st_mtime * 1000))
        with open(args.local, "rb") as fh:
            entry = await adapter.write_stream(args.remote, fh, options)
        _print_entry(entry)
        return 0

    if command == "get":
        stream = await adapter.read_stream(args.remote)
        if stream is None:
            logger.error("No such file: %s", args.remote)
            return EXIT_NOT_FOUND
        with open(args.local, "wb") as fh:
            async for chunk in stream:
                fh.write(chunk)
        return 0

    if command in ("cp", "mv", "rm"):
        if command == "cp":
            ok = await adapter.copy(args.src, args.dst)
            missing = args.src
        elif command == "mv":
            ok = await adapter.rename(args.src, args.dst)
            missing = args.src
        else:
            ok = await adapter.delete(args.path)
            missing = args.path
        if not ok:
            logger.error("No such file: %s", missing)
            return EXIT_NOT_FOUND
        return 0

    if command == "rmdir":
        await adapter.delete_dir(args.directory)
        return 0

    raise ValueError(f"Unknown command: {command}")


async def _run(args: argparse.Namespace, config: B2FSConfig) -> int:
    client = create_store_client(config)
    await client.init()
    try:
        uploader = LargeFileUploader(
            client,
            part_size=config.upload.part_size,
            min_part_size=config.upload.min_part_size,
            concurrency=config.upload.concurrency,
        )
        adapter = B2Adapter(client, prefix=config.b2.prefix, uploader=uploader)
        return await run_command(args, adapter)
    finally:
        await client.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the b2fs CLI.

    Loads configuration, applies CLI overrides, and runs one subcommand.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(EXIT_CONFIG_ERROR)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(EXIT_CONFIG_ERROR)

    if args.prefix is not None:
        config.b2.prefix = args.prefix
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    configure_logging(level=config.logging.level, fmt=config.logging.format)

    if config.metrics.enabled:
        metrics.init_metrics()
        start_http_server(config.metrics.port)
        logger.info("Serving metrics on port %d", config.metrics.port)

    try:
        code = asyncio.run(_run(args, config))
    except B2FSError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        sys.exit(EXIT_STORE_ERROR)
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(EXIT_CONFIG_ERROR)
    sys.exit(code)


if __name__ == "__main__":
    main()
