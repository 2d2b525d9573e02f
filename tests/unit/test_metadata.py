import json
import os

import pytest

from jmrunner.core.errors import CorruptMetadata, MetadataNotFound
from jmrunner.core.metadata import METADATA_NAME, metadata_path, read_metadata, write_metadata
from jmrunner.models import Run, RunOutcome, RunStatus


@pytest.fixture
def root(tmp_path):
    return str(tmp_path)


def _run(run_id="run-1", **overrides):
    fields = {
        "id": run_id,
        "name": "Load test",
        "category": "nightly",
        "timestamp": "2026-01-01T12:00:00+00:00",
        "status": RunStatus.DONE,
        "code": 0,
        "duration": 12.5,
        "outcome": RunOutcome.SUCCEEDED,
    }
    fields.update(overrides)
    return Run(**fields)


def _mkdir(root, run_id):
    os.makedirs(os.path.join(root, run_id))


def test_round_trip(root):
    _mkdir(root, "run-1")
    run = _run()
    write_metadata(root, run)
    assert read_metadata(root, "run-1") == run


def test_round_trip_minimal_run(root):
    _mkdir(root, "run-1")
    run = Run(id="run-1", name="Minimal", timestamp="2026-01-01T12:00:00+00:00")
    write_metadata(root, run)
    assert read_metadata(root, "run-1") == run


def test_write_location_and_format(root):
    _mkdir(root, "run-1")
    write_metadata(root, _run(category=None, code=None, duration=None, outcome=None,
                              status=RunStatus.QUEUED))
    path = os.path.join(root, "run-1", METADATA_NAME)
    assert metadata_path(root, "run-1") == path
    with open(path) as f:
        data = json.load(f)
    assert data["status"] == "queued"
    assert "code" not in data
    assert "category" not in data


def test_write_overwrites_previous_record(root):
    _mkdir(root, "run-1")
    write_metadata(root, _run(status=RunStatus.RUNNING, code=None, outcome=None, duration=None))
    write_metadata(root, _run())
    assert read_metadata(root, "run-1").status == RunStatus.DONE
    assert os.listdir(os.path.join(root, "run-1")) == [METADATA_NAME]


def test_write_fsyncs(root, monkeypatch):
    _mkdir(root, "run-1")
    synced = []
    real_fsync = os.fsync
    monkeypatch.setattr(os, "fsync", lambda fd: (synced.append(fd), real_fsync(fd)))
    write_metadata(root, _run())
    assert len(synced) == 1


def test_read_missing(root):
    _mkdir(root, "run-1")
    with pytest.raises(MetadataNotFound):
        read_metadata(root, "run-1")


def test_read_missing_directory(root):
    with pytest.raises(MetadataNotFound):
        read_metadata(root, "nope")


@pytest.mark.parametrize(
    "content", [b"{not json", b'{"id": "run-1"}', b"[]", b"", b"\xff\xfe\x00garbage"]
)
def test_read_corrupt(root, content):
    _mkdir(root, "run-1")
    with open(metadata_path(root, "run-1"), "wb") as f:
        f.write(content)
    with pytest.raises(CorruptMetadata):
        read_metadata(root, "run-1")


def test_read_metadata_path_is_directory(root):
    os.makedirs(metadata_path(root, "run-1"))
    with pytest.raises(CorruptMetadata):
        read_metadata(root, "run-1")
