"""Shared fixtures: a relay context whose Hive and SMTP sides are mocks."""

from unittest.mock import MagicMock

import pytest

from spam_relay.main import create_app
from spam_relay.pipeline import RelayContext
from spam_relay.templates import TemplateRegistry


@pytest.fixture(scope="session")
def registry() -> TemplateRegistry:
    return TemplateRegistry.load()


@pytest.fixture
def transport():
    fake = MagicMock()
    fake.send.return_value = "0102018f-test-message-id"
    fake.summary.return_value = {"mode": "mock"}
    return fake


@pytest.fixture
def authorize():
    return MagicMock(return_value=True)


@pytest.fixture
def ctx(registry, transport, authorize) -> RelayContext:
    return RelayContext(templates=registry, transport=transport, authorize=authorize)


@pytest.fixture
def client(ctx):
    app = create_app(ctx)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def payload() -> dict:
    return {
        "key": "test-api-key",
        "from": "sender@datasektionen.se",
        "to": "receiver@example.com",
        "subject": "Hej",
        "content": "Hello **world**",
    }
