import asyncio
import uuid

import pytest

from jmrunner.core.archive import RunArchive
from jmrunner.core.metadata import write_metadata
from jmrunner.core.metrics import DurationGauge
from jmrunner.core.registry import RunRegistry
from jmrunner.core.supervisor import ProcessSupervisor
from jmrunner.models import Run, RunStatus


@pytest.fixture
def archive(settings):
    arc = RunArchive(settings)
    arc.ensure_roots()
    return arc


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture
def metrics():
    return DurationGauge()


@pytest.fixture
def events():
    return asyncio.Queue()


@pytest.fixture
def supervisor(settings, runner, registry, archive, metrics, events, clock):
    return ProcessSupervisor(settings, runner, registry, archive, metrics, events, clock=clock)


@pytest.fixture
def queued_run(archive, registry, make_plan, clock):
    """Factory: a queued run with its temp working directory, registered."""

    def _make(name="Smoke test", category="smoke", labels=None, spec=None):
        run = Run(
            id=str(uuid.uuid4()),
            name=name,
            category=category,
            timestamp=clock().isoformat(),
            status=RunStatus.QUEUED,
        )
        archive.create_working_dir(run.id, spec or make_plan(name, labels))
        write_metadata(archive.temp_root, run)
        registry.upsert(run)
        return run

    return _make
