"""Worker entry point: python -m hophop.app.main [package.module:ConsumerClass]"""
import asyncio
import signal
import sys

from loguru import logger

from hophop.app.application.loader import load_consumer
from hophop.app.composition import create_worker_dependencies
from hophop.app.config.settings import Settings
from hophop.app.core import SERVICE_NAME


def _log(event: str, **kwargs) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker(consumer_path: str, settings: Settings | None = None) -> bool:
    settings = settings or Settings()
    consumer = load_consumer(consumer_path)
    deps = create_worker_dependencies(consumer, settings)

    await deps.connect()
    try:
        consumption_loop = deps.loop

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, consumption_loop.stop)
            except NotImplementedError:
                pass

        _log("worker_started", consumer=consumer_path, queue=settings.queue_name)
        return await consumption_loop.run()
    finally:
        await deps.close()
        _log("worker_stopped")


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    settings = Settings()
    consumer_path = argv[0] if argv else settings.consumer_class
    if not consumer_path:
        logger.error("no consumer given: pass package.module:ClassName or set CONSUMER_CLASS")
        return 2

    try:
        ok = asyncio.run(run_worker(consumer_path, settings))
    except KeyboardInterrupt:
        _log("worker_interrupted")
        return 1
    except Exception as e:
        logger.exception("worker failed: {}", e)
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
