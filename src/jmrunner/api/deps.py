from fastapi import Depends, HTTPException, Request

from jmrunner.config import Settings
from jmrunner.core.controller import RunController


async def get_controller(request: Request) -> RunController:
    return request.app.state.controller


async def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _check_api_key(request: Request, api_key: str) -> None:
    if api_key and request.headers.get("x-api-key") != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def require_run_key(request: Request, settings: Settings = Depends(get_settings)):
    _check_api_key(request, settings.run_test_api_key)


async def require_check_key(request: Request, settings: Settings = Depends(get_settings)):
    _check_api_key(request, settings.check_test_api_key)


async def require_delete_key(request: Request, settings: Settings = Depends(get_settings)):
    _check_api_key(request, settings.delete_test_api_key)
