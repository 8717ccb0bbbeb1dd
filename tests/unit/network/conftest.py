"""Fixtures for network client tests."""

import asyncio

import pytest
from aiohttp import test_utils, web


@pytest.fixture
def run_with_server():
    """Start a server with ``routes``, then await ``scenario(base_url)``."""
    def runner(routes, scenario):
        async def main():
            app = web.Application()
            app.add_routes(routes)
            server = test_utils.TestServer(app)
            await server.start_server()
            try:
                return await scenario(str(server.make_url("/")).rstrip("/"))
            finally:
                await server.close()

        return asyncio.run(main())
    return runner
