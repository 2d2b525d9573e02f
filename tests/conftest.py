import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from jmrunner.adapters.mock import MockProcessRunner
from jmrunner.config import Settings
from jmrunner.core.controller import RunController
from jmrunner.main import create_app

PLAN_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<jmeterTestPlan version="1.2" properties="5.0" jmeter="5.6.3">
  <hashTree>
    <TestPlan guiclass="TestPlanGui" testclass="TestPlan" testname="{name}" enabled="true">
      <boolProp name="TestPlan.functional_mode">false</boolProp>
    </TestPlan>
    <hashTree>
{labels}
      <ThreadGroup guiclass="ThreadGroupGui" testclass="ThreadGroup" testname="Users" enabled="true"/>
      <hashTree/>
    </hashTree>
  </hashTree>
</jmeterTestPlan>
"""

LABELS_TEMPLATE = """      <Arguments guiclass="ArgumentsPanel" testclass="Arguments" testname="Labels" enabled="true">
        <collectionProp name="Arguments.arguments">
{elements}
        </collectionProp>
      </Arguments>
      <hashTree/>"""

ELEMENT_TEMPLATE = """          <elementProp name="{key}" elementType="Argument">
            <stringProp name="Argument.name">{key}</stringProp>
            <stringProp name="Argument.value">{value}</stringProp>
            <stringProp name="Argument.metadata">=</stringProp>
          </elementProp>"""


def build_plan(name: str = "Smoke test", labels: dict[str, str] | None = None) -> bytes:
    section = ""
    if labels is not None:
        elements = "\n".join(
            ELEMENT_TEMPLATE.format(key=k, value=v) for k, v in labels.items()
        )
        section = LABELS_TEMPLATE.format(elements=elements)
    return PLAN_TEMPLATE.format(name=name, labels=section).encode("utf-8")


class FakeClock:
    """Deterministic UTC clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def make_plan():
    return build_plan


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        test_folder_base=str(tmp_path / "tests"),
        temp_folder_base=str(tmp_path / "temp"),
        jmeter_executable="jmeter",
        refresh_time=5,
        base_url="http://runner.test",
    )


@pytest.fixture
def runner():
    return MockProcessRunner()


@pytest.fixture
async def controller(settings, runner, clock):
    ctrl = RunController(settings, runner, clock=clock)
    await ctrl.reconcile_on_startup()
    return ctrl


@pytest.fixture
def finish_run(controller, runner):
    """End the most recent mock process and let the controller handle the exit."""

    async def _finish(code: int = 0, signal: int | None = None, handle=None):
        (handle or runner.last).finish(code, signal)
        await asyncio.wait_for(controller.process_next_event(), timeout=1)

    return _finish


@pytest.fixture
def app(settings, controller):
    application = create_app(settings)
    application.state.controller = controller
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
