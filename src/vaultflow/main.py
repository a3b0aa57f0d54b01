"""Main entry point - runs the vault API server."""

import asyncio
import logging
import signal

import uvicorn

from vaultflow.api.app import create_app
from vaultflow.config import get_settings

logger = logging.getLogger(__name__)


class Application:
    """Runs the API until a shutdown signal arrives."""

    def __init__(self):
        self.settings = get_settings()
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting Vaultflow...")
        logger.info(f"Environment: {self.settings.environment}")
        logger.info(f"Chain: {self.settings.chain_id}")

        api_task = asyncio.create_task(self._run_api())

        await self._shutdown_event.wait()

        api_task.cancel()
        await asyncio.gather(api_task, return_exceptions=True)
        logger.info("Shutdown complete")

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            config = uvicorn.Config(
                create_app(),
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise
        finally:
            self._shutdown_event.set()

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = Application()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
