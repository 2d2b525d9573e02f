from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from jmrunner import __version__
from jmrunner.core.controller import RunController

from .deps import get_controller

router = APIRouter(tags=["monitoring"])


@router.get("/health")
async def health(controller: RunController = Depends(get_controller)):
    return {"status": "ok", "version": __version__, "controller": controller.status.value}


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(controller: RunController = Depends(get_controller)):
    return controller.metrics.render()
