"""Metadata store: one JSON record per run at <root>/<id>/metadata.json."""

from __future__ import annotations

import logging
import os

from pydantic import ValidationError

from jmrunner.core.errors import CorruptMetadata, MetadataNotFound
from jmrunner.models import Run

logger = logging.getLogger(__name__)

METADATA_NAME = "metadata.json"


def metadata_path(root: str, run_id: str) -> str:
    return os.path.join(root, run_id, METADATA_NAME)


def write_metadata(root: str, run: Run) -> None:
    """Durably write a run's metadata, replacing any previous record.

    The record is written to a sibling temp file, fsync'ed and renamed over
    the target, so a crash leaves either the old or the new record.
    """
    path = metadata_path(root, run.id)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(run.model_dump_json(exclude_none=True))
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def read_metadata(root: str, run_id: str) -> Run:
    path = metadata_path(root, run_id)
    try:
        with open(path, "rb") as f:
            content = f.read()
    except FileNotFoundError:
        raise MetadataNotFound(f"No metadata for run {run_id} at {path}") from None
    except OSError as exc:
        raise CorruptMetadata(f"Cannot read metadata at {path}: {exc}") from exc
    try:
        return Run.model_validate_json(content)
    except (ValidationError, UnicodeDecodeError) as exc:
        raise CorruptMetadata(f"Cannot parse metadata at {path}: {exc}") from exc
