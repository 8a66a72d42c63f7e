"""Maintenance commands, run through the flask CLI (`flask --app api sweep-orphans`)."""

import logging
import time

import click

from models import storage
from models.stored_file import StoredFile
from utils.blob_storage import BlobNotFoundError, BlobStorageError, get_blob_storage

logger = logging.getLogger(__name__)

_DEFAULT_MIN_AGE_SECONDS = 3600


def find_orphans(min_age_seconds: int = _DEFAULT_MIN_AGE_SECONDS) -> list:
    """Blob paths no record points at, older than min_age_seconds.

    The age floor skips blobs of uploads still between blob write and
    metadata commit.
    """
    blobs = get_blob_storage()
    referenced = StoredFile.referenced_paths(storage.get_session())
    cutoff = time.time() - min_age_seconds
    orphans = []
    for path in blobs.iter_paths():
        if path in referenced:
            continue
        try:
            if blobs.modified_at(path) > cutoff:
                continue
        except BlobNotFoundError:
            continue
        orphans.append(path)
    return sorted(orphans)


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create database tables."""
        storage.reload()
        click.echo("Database tables created")

    @app.cli.command("sweep-orphans")
    @click.option("--dry-run", is_flag=True, help="List orphaned blobs without deleting them")
    @click.option(
        "--min-age",
        type=int,
        default=_DEFAULT_MIN_AGE_SECONDS,
        show_default=True,
        help="Only consider blobs at least this many seconds old",
    )
    def sweep_orphans(dry_run, min_age):
        """Delete stored blobs that no file record references."""
        orphans = find_orphans(min_age)
        blobs = get_blob_storage()

        removed = 0
        failed = 0
        for path in orphans:
            if dry_run:
                click.echo(f"Would delete: {path}")
                continue
            try:
                if blobs.delete(path):
                    removed += 1
                    logger.info("Swept orphaned blob: %s", path)
            except BlobStorageError as exc:
                click.echo(f"Failed to delete {path}: {exc}", err=True)
                failed += 1

        if dry_run:
            click.echo(f"Would delete {len(orphans)} orphaned blobs")
        else:
            click.echo(f"Deleted {removed} orphaned blobs, {failed} failed")
