"""Main entry point: health API and arbitrage pipeline in one process."""
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI

from flash_arbitrage.api.health import router as health_router
from flash_arbitrage.config.settings import Settings, settings
from flash_arbitrage.exceptions import ArbitrageInitializationError
from flash_arbitrage.service import ArbitrageService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

    # Keep third-party transports quiet
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


def create_app(service: Optional[ArbitrageService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.service = service
        logger.info("🚀 Health API started")
        yield
        logger.info("🛑 Health API stopped")

    app = FastAPI(
        title="Flash Arbitrage API",
        description="Mempool-driven flash loan arbitrage with private bundle submission",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.service = service
    app.include_router(health_router, tags=["health"])

    return app


async def run_bot(config: Settings) -> int:
    """
    Initialize the pipeline, then serve the API alongside it.

    Returns the process exit code: 0 after a clean shutdown, 1 after a fatal
    pipeline error or an unhandled exception in any task.
    """
    service = ArbitrageService(config)
    try:
        await service.initialize()
    except BaseException:
        # Release whatever connected before the failing step
        await service.close()
        raise

    server = uvicorn.Server(uvicorn.Config(
        create_app(service),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    ))

    loop = asyncio.get_running_loop()
    fatal = asyncio.Event()

    def handle_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exception = context.get("exception")
        logger.error(f"❌ Unhandled exception: {context.get('message')}", exc_info=exception)
        fatal.set()

    loop.set_exception_handler(handle_exception)

    pipeline_task = asyncio.create_task(service.run(), name="pipeline")
    server_task = asyncio.create_task(server.serve(), name="health-api")
    fatal_task = asyncio.create_task(fatal.wait(), name="fatal-watch")

    exit_code = 0
    try:
        await asyncio.wait(
            {pipeline_task, server_task, fatal_task},
            return_when=asyncio.FIRST_COMPLETED
        )

        if fatal.is_set():
            exit_code = 1
        elif pipeline_task.done() and pipeline_task.exception() is not None:
            exit_code = 1
    finally:
        server.should_exit = True
        await service.close()

        for task in (pipeline_task, server_task, fatal_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(pipeline_task, server_task, fatal_task, return_exceptions=True)

    return exit_code


def main() -> int:
    """Console entry point."""
    configure_logging(settings.log_level)

    try:
        return asyncio.run(run_bot(settings))
    except ArbitrageInitializationError as e:
        logger.error(f"❌ Startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
