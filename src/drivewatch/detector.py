"""Find files modified at or after the watermark across a folder set."""
from __future__ import annotations

import logging
from datetime import datetime

from .drive import FOLDER_MIME_TYPE, quote
from .models import ChangeRecord
from .util import to_utc

log = logging.getLogger(__name__)

QUERY_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def build_changes_query(folder_ids: list[str], since: datetime) -> str:
    """
    Build one Drive query covering every folder.

    The time bound is inclusive (>=); callers advance the watermark past the
    newest reported file so it is not reported twice.
    """
    if not folder_ids:
        raise ValueError("folder_ids must not be empty")
    since_text = to_utc(since).strftime(QUERY_TIME_FORMAT)
    parents = " or ".join(f"{quote(folder_id)} in parents" for folder_id in folder_ids)
    return (
        f"modifiedTime >= '{since_text}' and trashed = false "
        f"and mimeType != '{FOLDER_MIME_TYPE}' and ({parents})"
    )


def find_changes(backend, folder_ids: list[str], since: datetime) -> list[ChangeRecord]:
    """
    Query the backend once for files changed since the watermark.

    Raises:
        BackendUnavailable: if the query fails
    """
    if not folder_ids:
        log.info("Folder set is empty; skipping change query")
        return []

    query = build_changes_query(folder_ids, since)
    log.debug(f"Change query over {len(folder_ids)} folders: {query}")

    changes = [
        ChangeRecord(name=f.name, url=f.url, last_updated=to_utc(f.modified_time))
        for f in backend.search_files(query)
    ]
    log.info(f"Total updated files found: {len(changes)}")
    return changes
