from fastapi import APIRouter, Depends

from jmrunner.api.deps import get_controller, require_check_key, require_run_key
from jmrunner.core.controller import RunController
from jmrunner.models import RunStatus

router = APIRouter(prefix="/controller", tags=["controller"])


@router.get("", dependencies=[Depends(require_check_key)])
async def controller_status(controller: RunController = Depends(get_controller)):
    return {
        "status": controller.status.value,
        "running": controller.running_count,
        "queued": len(controller.registry.with_status(RunStatus.QUEUED)),
    }


@router.post("/resume", dependencies=[Depends(require_run_key)])
async def resume(controller: RunController = Depends(get_controller)):
    status = await controller.resume()
    return {"status": status.value}
