from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from jmrunner.api.deps import (
    get_controller,
    get_settings,
    require_check_key,
    require_delete_key,
    require_run_key,
)
from jmrunner.config import Settings
from jmrunner.core.controller import RunController
from jmrunner.core.errors import InvalidSpec, OutputNotFound, RunNotFound
from jmrunner.models import RunStatus

router = APIRouter(prefix="/runs", tags=["runs"])

MEGABYTE = 1048576


def _links(settings: Settings, run_id: str) -> dict[str, str]:
    base = settings.public_url.rstrip("/") + settings.api_prefix
    return {
        "status": f"{base}/runs/{run_id}",
        "results": f"{base}/runs/{run_id}/output",
    }


@router.post("", status_code=201, dependencies=[Depends(require_run_key)])
async def submit_run(
    request: Request,
    category: Optional[str] = None,
    controller: RunController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    if len(body) > settings.max_body_mb * MEGABYTE:
        raise HTTPException(status_code=413, detail="Test plan too large")
    try:
        run = await controller.submit(body, category)
    except InvalidSpec as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"id": run.id, "run_status": run.status.value, **_links(settings, run.id)}


@router.get("", dependencies=[Depends(require_check_key)])
async def overview(
    controller: RunController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
):
    data = controller.overview().model_dump(mode="json")
    data["controller"] = controller.status.value
    data["refresh"] = settings.refresh_time
    return data


@router.get("/{run_id}", dependencies=[Depends(require_check_key)])
async def run_status(
    run_id: str,
    limit: Optional[int] = None,
    controller: RunController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
):
    try:
        run = controller.get_run(run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Test run not found")
    try:
        output = await controller.tail_output(run_id, limit)
    except OutputNotFound:
        output = ""
    return {
        **run.model_dump(mode="json", exclude_none=True),
        "refresh": settings.refresh_time if run.status == RunStatus.RUNNING else None,
        "output": output,
    }


@router.get(
    "/{run_id}/output",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_check_key)],
)
async def run_output(
    run_id: str,
    limit: Optional[int] = None,
    controller: RunController = Depends(get_controller),
):
    try:
        return await controller.tail_output(run_id, limit)
    except RunNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/cancel", dependencies=[Depends(require_run_key)])
async def cancel_all(controller: RunController = Depends(get_controller)):
    cancelled = await controller.cancel_all()
    return {"cancelled": [run.id for run in cancelled]}


@router.post("/{run_id}/cancel", dependencies=[Depends(require_run_key)])
async def cancel_run(run_id: str, controller: RunController = Depends(get_controller)):
    try:
        run = await controller.cancel(run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Test run not found")
    return {"id": run.id, "run_status": run.status.value}


@router.delete("", dependencies=[Depends(require_delete_key)])
async def delete_all(confirm: bool = False, controller: RunController = Depends(get_controller)):
    deleted = await controller.delete_all(confirm)
    if not confirm:
        return {"deleted": 0, "detail": "All test runs cancelled, pass confirm=true to delete"}
    return {"deleted": deleted}


@router.delete("/{run_id}", dependencies=[Depends(require_delete_key)])
async def delete_run(
    run_id: str,
    confirm: bool = False,
    controller: RunController = Depends(get_controller),
):
    try:
        deleted = await controller.delete(run_id, confirm)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Test run not found")
    if not deleted:
        return {"id": run_id, "deleted": False, "detail": "Pass confirm=true to delete test run data"}
    return {"id": run_id, "deleted": True}
