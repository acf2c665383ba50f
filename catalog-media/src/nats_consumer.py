"""NATS JetStream consumer for the catalog media jobs.

Provides run_consumer() - the entry point for every job. Connects to NATS
JetStream, pulls messages from a durable consumer, calls the handler, and
manages acks/nacks. Serves /health and /status on HEALTH_PORT (default 8080).
A shutdown signal sets the `stop` event handed to the handler so long batches
stop starting new work.
"""

import asyncio
import json
import logging
import os
import signal
from typing import Awaitable, Callable, Optional

import nats
from aiohttp import web

logger = logging.getLogger(__name__)

Handler = Callable[[dict, Callable[[str, dict], Awaitable[None]], asyncio.Event], Awaitable[None]]


async def _health_handler(request):
    return web.Response(text="OK")


StatusCallback = Callable[..., Awaitable[dict]]


def build_health_app(status: Optional[StatusCallback] = None) -> web.Application:
    """/health answers OK. /status awaits `status(check=...)`; `?check=1` asks for backend checks."""
    app = web.Application()
    app.router.add_get("/health", _health_handler)

    async def _status_handler(request):
        if status is None:
            return web.json_response({})
        check = request.query.get("check", "").lower() in ("1", "true", "yes")
        return web.json_response(await status(check=check))

    app.router.add_get("/status", _status_handler)
    return app


async def _run_health_server(status, port: int):
    runner = web.AppRunner(build_health_app(status))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    return runner


async def _run(handler: Handler, job_name: str, concurrency: int, handler_timeout: float, status):
    nats_url = os.environ.get("NATS_URL", "nats://localhost:4222")
    stream = os.environ.get("NATS_STREAM", "catalog-media-events")
    consumer_name = os.environ.get("NATS_CONSUMER", f"{job_name}-consumer")
    subject_filter = os.environ.get("NATS_SUBJECT_FILTER", job_name)
    health_port = int(os.environ.get("HEALTH_PORT", 8080))

    logger.info(f"Starting {job_name} consumer (stream={stream}, consumer={consumer_name}, filter={subject_filter})")

    health_runner = await _run_health_server(status, health_port)
    logger.info(f"Health check server running on :{health_port}")

    nc = await nats.connect(nats_url)
    js = nc.jetstream()

    sub = await js.pull_subscribe(
        subject_filter,
        durable=consumer_name,
        stream=stream,
    )

    shutdown = asyncio.Event()

    def _signal_handler():
        logger.info("Received shutdown signal")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _signal_handler)

    async def publish(subject: str, data: dict):
        payload = json.dumps(data).encode()
        await js.publish(subject, payload)
        logger.info(f"Published to {subject}")

    logger.info(f"Pulling messages (concurrency={concurrency})...")

    while not shutdown.is_set():
        try:
            msgs = await sub.fetch(batch=concurrency, timeout=5)
        except nats.errors.TimeoutError:
            continue

        for msg in msgs:
            try:
                await msg.in_progress()
                data = json.loads(msg.data.decode())
                logger.info(f"Processing message on {msg.subject}")
                await asyncio.wait_for(handler(data, publish, shutdown), timeout=handler_timeout)
                await msg.ack()
                logger.info("Message processed and acked")
            except asyncio.TimeoutError:
                logger.error(f"Handler timed out after {handler_timeout}s, nacking")
                await msg.nak(delay=30)
            except Exception:
                logger.exception("Handler failed, nacking message")
                await msg.nak(delay=30)

    logger.info("Shutting down...")
    await sub.unsubscribe()
    await nc.drain()
    await health_runner.cleanup()
    logger.info("Shutdown complete")


def run_consumer(handler: Handler, job_name: str, concurrency: int = 1, handler_timeout: float = 900,
                 status: Optional[StatusCallback] = None):
    """Main entry point. Blocks until SIGTERM/SIGINT."""
    asyncio.run(_run(handler, job_name, concurrency, handler_timeout, status))
