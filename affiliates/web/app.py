"""
aiohttp application exposing the public HTTP surface.
"""

import asyncio

from aiohttp import web
from loguru import logger

from affiliates.program import AffiliateProgram
from affiliates.web.handlers import (
    PROGRAM_KEY,
    payment_webhook_handler,
    track_click_handler,
    validate_code_handler,
)

ROUTE_PREFIX = "/affiliates"


def create_app(program: AffiliateProgram) -> web.Application:
    """
    Build the web application.

    Args:
        program: Configured affiliate program

    Returns:
        aiohttp application
    """
    app = web.Application()
    app[PROGRAM_KEY] = program
    app.router.add_post(f"{ROUTE_PREFIX}/webhooks/payments", payment_webhook_handler)
    app.router.add_get(f"{ROUTE_PREFIX}/affiliate/{{code}}", validate_code_handler)
    app.router.add_post(f"{ROUTE_PREFIX}/track", track_click_handler)
    return app


async def start_web_server(
    program: AffiliateProgram,
    host: str = "0.0.0.0",
    port: int = 8090,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start the web server.

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    runner = web.AppRunner(create_app(program))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Affiliates web server started on {host}:{port}")
    logger.info(f"  - Webhook: http://{host}:{port}{ROUTE_PREFIX}/webhooks/payments")
    return runner, site


async def stop_web_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop the web server gracefully."""
    logger.info("Stopping affiliates web server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"Web server cleanup timed out after {timeout}s")
