"""Shared fixtures for the drivewatch test suite.

FakeBackend stands in for the Drive API: a folder tree (id -> child ids) and a
list of (parent_id, DriveFile) pairs. search_files honors the parts of the
query the monitor relies on (the modifiedTime lower bound and the parent
disjunction), so tick-level tests exercise real watermark behaviour.
"""

import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from drivewatch.config import parse_config
from drivewatch.drive import DriveFile
from drivewatch.errors import BackendUnavailable
from drivewatch.state import StateStore


class FakeBackend:
    def __init__(self, tree: dict[str, list[str]], files=None):
        self.tree = tree
        self.files: list[tuple[str, DriveFile]] = list(files or [])
        self.child_calls = 0
        self.queries: list[str] = []
        self.fail_search = False
        self.fail_listing = False

    def add_file(self, parent: str, file_id: str, name: str, modified: str, url: str | None = None) -> None:
        self.files.append(
            (
                parent,
                DriveFile(
                    id=file_id,
                    name=name,
                    webViewLink=url or f"https://drive.example/{file_id}",
                    modifiedTime=modified,
                ),
            )
        )

    def get_folder(self, folder_id):
        if folder_id not in self.tree:
            raise BackendUnavailable(f"Drive lookup of folder {folder_id} failed: 404")
        return {"id": folder_id}

    def list_child_folder_ids(self, folder_id):
        self.child_calls += 1
        if self.fail_listing:
            raise BackendUnavailable("Drive child listing failed: 503")
        return list(self.tree.get(folder_id, []))

    def search_files(self, query):
        self.queries.append(query)
        if self.fail_search:
            raise BackendUnavailable("Drive file search failed: 503")
        since_text = re.search(r"modifiedTime >= '([^']+)'", query).group(1)
        since = datetime.fromisoformat(since_text).replace(tzinfo=timezone.utc)
        parents = set(re.findall(r"'([^']+)' in parents", query))
        return [
            f for parent, f in self.files
            if parent in parents and f.modified_time >= since
        ]


@pytest.fixture
def backend():
    return FakeBackend({"root": ["sub1", "sub2"], "sub1": ["sub1a"], "sub2": [], "sub1a": []})


@pytest.fixture
def store(tmp_path: Path):
    s = StateStore(tmp_path / "state.db")
    yield s
    s.close()


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**overrides):
        raw = {
            "root_folder_id": "root",
            "state_db": str(tmp_path / "state.db"),
            "run_log": str(tmp_path / "runs.jsonl"),
            "notifications": {
                "discord": {"enabled": True, "webhook_url": "https://discord.example/api/webhooks/1/abc"},
                "slack": {"enabled": True, "webhook_url": "https://hooks.slack.example/services/T/B/X"},
                "telegram": {"enabled": True, "bot_token": "42:real-token", "chat_id": "-1001"},
            },
        }
        raw.update(overrides)
        return parse_config(raw, base_dir=tmp_path)

    return _make
