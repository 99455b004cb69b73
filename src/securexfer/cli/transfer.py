"""Download and upload commands for the securexfer CLI.

Commands:
- download: Fetch a file in encrypted, resumable chunks
- upload: Send a file in chunks
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import unquote, urlsplit

import click

from securexfer.cli.config import get_download_dir, get_int_setting, get_setting
from securexfer.cli.keystore import unlock_keystore
from securexfer.core.config import TransferConfig, TrustConfig
from securexfer.core.types import TransferDirection
from securexfer.transfer import (
    AesCtrChunkCodec,
    PartialTransferError,
    TransferCoordinator,
    TransferJob,
    TransferResult,
)

F = TypeVar("F", bound=Callable[..., Any])


def parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    """Parse ``Name: value`` header options.

    Raises:
        click.BadParameter: If a value has no colon or an empty name.
    """
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def name_from_url(url: str) -> str:
    """Derive a file name from the last path segment of a URL."""
    name = unquote(urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1])
    if not name:
        raise click.BadParameter(f"cannot derive a file name from {url!r}", param_hint="--name")
    return name


def build_config(
    chunk_size: int | None,
    concurrency: int | None,
    headers: tuple[str, ...],
    pin_cert: Path | None,
    method: str | None = None,
) -> TransferConfig:
    """Build a TransferConfig from command options and stored settings."""
    return TransferConfig(
        chunk_size=chunk_size or get_int_setting("chunk_size"),
        max_concurrent_chunks=concurrency or get_int_setting("concurrency"),
        attempt_budget=get_int_setting("attempt_budget"),
        headers=parse_headers(headers),
        trust=TrustConfig(pinned_cert_path=pin_cert) if pin_cert else None,
        upload_method=method or get_setting("upload_method"),
    )


def run_with_progress(
    coordinator: TransferCoordinator,
    job: TransferJob,
    show_progress: bool,
) -> TransferResult:
    """Run a job, rendering its progress as a bar on the terminal."""
    if not show_progress:
        return coordinator.transfer(job)

    lock = threading.Lock()
    verb = "Downloading" if job.direction == TransferDirection.DOWNLOAD else "Uploading"
    label = f"{verb} {job.name}"
    with click.progressbar(length=100, label=label) as bar:

        def on_progress(percent: int) -> None:
            with lock:
                bar.update(percent - bar.pos)

        return coordinator.transfer(job, on_progress=on_progress)


def report(result: TransferResult) -> None:
    """Print the outcome of a transfer and exit 1 on failure."""
    if result.success:
        target = result.output_path or result.job_key
        click.echo(f"Done: {target} ({result.total_size} bytes in {result.elapsed_time:.1f}s)")
        return

    click.echo(f"Error: {result.error}", err=True)
    if isinstance(result.error, PartialTransferError):
        for chunk_error in result.error.chunk_errors:
            click.echo(f"  {chunk_error}: {chunk_error.__cause__}", err=True)
        click.echo("Run the same command again to retry the failed chunks.", err=True)
    sys.exit(1)


_transfer_options = [
    click.option("--chunk-size", type=click.IntRange(min=1), help="Chunk size in bytes."),
    click.option(
        "--concurrency", "-c", type=click.IntRange(min=1), help="Chunks transferred at once."
    ),
    click.option(
        "--header", "-H", "headers", multiple=True, help="Extra request header ('Name: value')."
    ),
    click.option(
        "--pin-cert",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="Trust only this PEM certificate.",
    ),
    click.option("--no-progress", is_flag=True, help="Disable the progress bar."),
]


def transfer_options(func: F) -> F:
    """Attach the options shared by download and upload."""
    for option in reversed(_transfer_options):
        func = option(func)
    return func


@click.command()
@click.argument("url")
@click.option("--name", "-n", help="Output file name (default: last URL segment).")
@click.option(
    "--dest",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    help="Destination directory.",
)
@transfer_options
def download(
    url: str,
    name: str | None,
    dest: Path | None,
    chunk_size: int | None,
    concurrency: int | None,
    headers: tuple[str, ...],
    pin_cert: Path | None,
    no_progress: bool,
) -> None:
    """Download URL in encrypted, resumable chunks."""
    config = build_config(chunk_size, concurrency, headers, pin_cert)
    job = TransferJob.download(
        url,
        name or name_from_url(url),
        (dest or get_download_dir()).expanduser(),
        config,
    )
    keystore = unlock_keystore()
    coordinator = TransferCoordinator(codec=AesCtrChunkCodec(keystore.transfer_key))
    report(run_with_progress(coordinator, job, not no_progress))


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("url")
@click.option("--method", "-X", help="HTTP method for chunk requests (default: POST).")
@transfer_options
def upload(
    file: Path,
    url: str,
    method: str | None,
    chunk_size: int | None,
    concurrency: int | None,
    headers: tuple[str, ...],
    pin_cert: Path | None,
    no_progress: bool,
) -> None:
    """Upload FILE to URL in chunks."""
    config = build_config(chunk_size, concurrency, headers, pin_cert, method)
    job = TransferJob.upload(file, url, config)
    coordinator = TransferCoordinator()
    report(run_with_progress(coordinator, job, not no_progress))
