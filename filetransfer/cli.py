"""Command line interface for filetransfer package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import BatchProgressDisplay, render_configuration_summary
from . import __version__
from .client import TransferClient
from .errors import ConfigurationError
from .models import AdapterConfig, ImageOptions, TransferFile, UploadConfig


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level_name = log_level or os.getenv("LOG_LEVEL") or "INFO"
        level = getattr(logging, level_name.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _normalize_dest(dest: Optional[str]) -> str:
    if dest is None:
        return ""
    value = dest.strip().rstrip("/")
    if not value:
        return ""
    return value if value.startswith("/") else f"/{value}"


def collect_files(sources: Sequence[Path]) -> List[TransferFile]:
    """
    Build transfer files from paths. Directories are walked recursively
    (hidden entries skipped) and keep their layout under /<dirname>/.
    """
    files: List[TransferFile] = []
    for source in sources:
        source = Path(source).expanduser()
        if source.is_file():
            files.append(_read_file(source, f"/{source.name}"))
            continue
        if source.is_dir():
            for path in sorted(source.rglob("*")):
                rel_path = path.relative_to(source)
                if any(part.startswith(".") for part in rel_path.parts) or not path.is_file():
                    continue
                files.append(_read_file(path, f"/{source.name}/{rel_path.as_posix()}"))
            continue
        raise CLIError(f"source does not exist: {source}")
    return files


def _read_file(path: Path, dest_path: str) -> TransferFile:
    content_type, _ = mimetypes.guess_type(path.name)
    try:
        return TransferFile.from_path(path, dest_path, content_type=content_type)
    except OSError as exc:
        raise CLIError(f"could not read {path}: {exc}") from exc


def _build_adapter_config(args: argparse.Namespace) -> AdapterConfig:
    adapter = args.adapter or os.getenv("FILETRANSFER_ADAPTER") or "local"
    return AdapterConfig(
        adapter=adapter,
        path=_normalize_dest(args.dest or os.getenv("FILETRANSFER_PATH")),
        token=args.token or os.getenv("DROPBOX_TOKEN"),
        request_upload_url=args.request_upload_url or os.getenv("FILETRANSFER_REQUEST_UPLOAD_URL"),
        request_upload_method=args.request_upload_method,
        endpoint=args.endpoint,
    )


def _build_upload_config(args: argparse.Namespace) -> UploadConfig:
    retries = args.retries
    if retries is None:
        env_retries = os.getenv("FILETRANSFER_RETRIES")
        try:
            retries = int(env_retries) if env_retries else 0
        except ValueError as exc:
            raise CLIError(f"FILETRANSFER_RETRIES must be an integer: {env_retries}") from exc
    if retries < 0:
        raise CLIError("--retries must be >= 0")

    image = None
    if args.resize_format or args.max_width or args.max_height:
        image = ImageOptions(
            format=args.resize_format or "JPEG",
            quality=args.quality,
            max_width=args.max_width,
            max_height=args.max_height,
        )

    return UploadConfig(
        retries=retries,
        retry_delay=args.retry_delay,
        timeout=args.timeout,
        image=image,
    )


async def _run_upload(files: List[TransferFile], adapter_config: AdapterConfig, config: UploadConfig) -> int:
    display = BatchProgressDisplay()
    async with TransferClient(config) as client:
        try:
            process = client.upload_files(files, adapter_config)
        except ConfigurationError as exc:
            raise CLIError(str(exc)) from exc

        process.on_item_start(display.on_item_start)
        process.on_item_progress(display.on_item_progress)
        process.on_item_complete(display.on_item_complete)
        process.on_item_fail(display.on_item_fail)
        process.on_progress(display.on_progress)
        process.on_finish(display.on_finish)
        process.on_error(display.on_error)

        try:
            batch = await process.wait()
        except asyncio.CancelledError:
            process.abort()
            display.stop()
            raise

    return 0 if batch.num_failed == 0 else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filetransfer",
        description="Upload files one at a time to a storage adapter.",
    )
    parser.add_argument("sources", nargs="*", type=Path, help="Files or folders to upload")
    parser.add_argument(
        "-a",
        "--adapter",
        default=None,
        help="Storage adapter: dropbox or local (default from FILETRANSFER_ADAPTER or local)",
    )
    parser.add_argument(
        "-g",
        "--dest",
        default=None,
        help="Destination path prefix (example: /Sites/blog), default from FILETRANSFER_PATH",
    )
    parser.add_argument("--token", default=None, help="Access token for dropbox (default from DROPBOX_TOKEN)")
    parser.add_argument(
        "--request-upload-url",
        default=None,
        help="Upload slot service URL for local (default from FILETRANSFER_REQUEST_UPLOAD_URL)",
    )
    parser.add_argument("--request-upload-method", default="GET", help="HTTP method for slot requests")
    parser.add_argument("--endpoint", default=None, help="Override the dropbox content API endpoint")
    parser.add_argument(
        "-r",
        "--retries",
        type=int,
        default=None,
        help="Retries per file (default from FILETRANSFER_RETRIES or 0)",
    )
    parser.add_argument("--retry-delay", type=float, default=0.0, help="Seconds to wait before each retry")
    parser.add_argument("--timeout", type=float, default=60.0, help="HTTP timeout in seconds")
    parser.add_argument("--resize-format", default=None, help="Re-encode images (JPEG, PNG, WEBP)")
    parser.add_argument("--quality", type=int, default=85, help="Image quality for JPEG/WEBP")
    parser.add_argument("--max-width", type=int, default=None, help="Scale images down to this width")
    parser.add_argument("--max-height", type=int, default=None, help="Scale images down to this height")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version=f"filetransfer {__version__}")
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.sources:
        parser.print_help()
        return 0

    try:
        files = collect_files(args.sources)
        adapter_config = _build_adapter_config(args)
        config = _build_upload_config(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if not files:
        print("Nothing to upload.", file=sys.stderr)
        return 0

    render_configuration_summary(
        {
            "Files": len(files),
            "Size": sum(file.size for file in files),
            "Adapter": adapter_config.adapter,
            "Dest": adapter_config.path or "/",
            "Slot URL": adapter_config.request_upload_url or "-",
            "Token": "set" if adapter_config.token else "-",
            "Retries": config.retries,
            "Resample": config.image.format if config.image else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(_run_upload(files, adapter_config, config))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
