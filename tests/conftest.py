"""Test configuration and fixtures."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from tests.helpers import FakeStore, make_context


@pytest.fixture
def store():
    """Empty server side state for one test."""
    return FakeStore()


@pytest.fixture
def context_factory(store):
    """Build pass contexts over the test store with config overrides."""

    def factory(**config_overrides):
        return make_context(store, **config_overrides)

    return factory


@pytest_asyncio.fixture
async def http_server():
    """Start in-process aiohttp servers from route tables.

    Usage: ``server = await http_server(routes)``; servers are closed at
    teardown.
    """
    servers: list[TestServer] = []

    async def start(routes: web.RouteTableDef) -> TestServer:
        app = web.Application()
        app.add_routes(routes)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield start

    for server in servers:
        await server.close()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "http: mark test as running against an in-process HTTP server"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
