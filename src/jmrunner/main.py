import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jmrunner import __version__
from jmrunner.adapters.local import LocalProcessRunner
from jmrunner.api.router import api_router
from jmrunner.config import Settings
from jmrunner.core.controller import RunController

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    controller = RunController(settings, LocalProcessRunner())
    app.state.controller = controller
    await controller.reconcile_on_startup()
    logger.info("Storing test data in %s", controller.archive.permanent_root)

    loop_task = asyncio.create_task(controller.main_loop())
    app.state.controller_task = loop_task

    logger.info("jmrunner v%s started", __version__)

    yield

    # Shutdown
    await controller.reconcile_on_shutdown()
    await controller.supervisor.stop_watchers()
    loop_task.cancel()
    try:
        await loop_task
    except asyncio.CancelledError:
        pass
    logger.info("jmrunner shut down")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(
        title="jmrunner",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.include_router(api_router, prefix=settings.api_prefix)
    return app
