"""
Keep-Alive Web Endpoint
Tiny HTTP server so hosting platforms see the bot process as healthy
"""

import logging

from aiohttp import web

logger = logging.getLogger(__name__)


async def handle_root(request):
    return web.Response(text="Bot is alive!")


def create_keep_alive_app():
    app = web.Application()
    app.router.add_get("/", handle_root)
    return app


async def start_keep_alive(port, host="0.0.0.0"):
    """
    Start the keep-alive server on the running event loop

    Returns:
        web.AppRunner: Call ``await runner.cleanup()`` on shutdown
    """
    runner = web.AppRunner(create_keep_alive_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Web server listening on port {port}")
    return runner
