import asyncio
import mimetypes
from pathlib import Path
from typing import List, Optional

import typer

from .config import EXECUTOR_KINDS, Settings
from .dedup.cluster import detect_duplicates_by_hash
from .dedup.hash import HashComputationError, compute_hash
from .dedup.model import DetectionProgress, FileRecord
from .logging import get_logger
from .pool.worker_pool import WorkerPool

app = typer.Typer(help="hashpool - perceptual hashing and near-duplicate detection for images", no_args_is_help=True)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff"}


def collect_images(directory: Path) -> List[FileRecord]:
    """Build detection records for every image file directly inside ``directory``."""
    records = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in IMAGE_SUFFIXES:
            continue
        media_type = mimetypes.guess_type(path.name)[0] or "image/" + path.suffix.lower().lstrip(".")
        records.append(FileRecord(id=str(path), name=path.name, content=path, media_type=media_type))
    return records


@app.command("hash")
def hash_files(
    files: List[Path] = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Image files to hash"),
) -> None:
    """
    Print the perceptual hash and quality score of each image.
    """
    logger = get_logger(__name__)
    failures = 0

    for path in files:
        try:
            result = compute_hash(path)
        except HashComputationError as exc:
            logger.error(str(exc))
            failures += 1
            continue
        typer.echo(f"{result.hash}  {result.quality:3d}  {path}")

    if failures:
        raise typer.Exit(code=1)


@app.command()
def scan(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, help="Directory of images to compare"),
    threshold: int = typer.Option(31, help="Maximum hash distance (0-256) for two images to count as duplicates"),
    workers: Optional[int] = typer.Option(None, help="Number of hashing executors (default: CPU count)"),
    executor: str = typer.Option("process", help=f"Executor kind: {' or '.join(EXECUTOR_KINDS)}"),
) -> None:
    """
    Hash every image in a directory and report near-duplicate groups.
    """
    logger = get_logger(__name__)

    overrides = {"pool_size": workers} if workers is not None else {}
    try:
        settings = Settings(threshold=threshold, executor_kind=executor, **overrides)
    except ValueError as exc:
        logger.error(f"Invalid options: {exc}")
        raise typer.Exit(code=2) from exc

    records = collect_images(directory)
    if not records:
        logger.warning(f"No images found in {directory}")
        raise typer.Exit(code=1)

    logger.info(f"Hashing {len(records)} images with {settings.pool_size} {settings.executor_kind} executors")

    def on_progress(progress: DetectionProgress) -> None:
        if progress.current_file:
            logger.debug(f"[{progress.processed_files}/{progress.total_files}] {progress.current_file}")

    with WorkerPool(size=settings.pool_size, executor_kind=settings.executor_kind) as pool:
        result = asyncio.run(detect_duplicates_by_hash(
            records,
            threshold=settings.threshold,
            on_progress=on_progress,
            hasher=pool.process_async,
        ))

    for group in result.groups:
        typer.echo(f"{group.group_id} ({len(group)} files)")
        for record in group.records:
            marker = "*" if record is group.representative else " "
            typer.echo(f"  {marker} {record.name}  {record.hash}")

    for record in result.failed:
        typer.echo(f"failed: {record.name}: {record.hash_error}")

    typer.echo(
        f"\n{len(records)} images, {len(result.groups)} duplicate groups, "
        f"{len(result.unique)} unique, {len(result.failed)} failed"
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
