"""Pytest fixtures for web API tests.

Provides Flask test client, test database and fake speech/chat gateways.
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from habitforge.core.database import Database
from habitforge.web import create_app
from tests.web.fakes import FakeChatGateway, FakeSpeechGateway


@pytest.fixture
def speech_gateway() -> FakeSpeechGateway:
    return FakeSpeechGateway()


@pytest.fixture
def chat_gateway() -> FakeChatGateway:
    return FakeChatGateway()


@pytest.fixture
def web_app(
    test_config_dir: Path,
    populated_db: Database,
    speech_gateway: FakeSpeechGateway,
    chat_gateway: FakeChatGateway,
) -> Generator[Flask, None, None]:
    """Create Flask app for testing.

    Yields:
        Flask application instance
    """
    app = create_app(
        config_dir=test_config_dir,
        speech_gateway=speech_gateway,
        chat_gateway=chat_gateway,
    )
    app.config["TESTING"] = True
    yield app
    app.config["HABITFORGE_DB"].close()


@pytest.fixture
def client(web_app: Flask) -> FlaskClient:
    """Create Flask test client.

    Args:
        web_app: Flask application

    Returns:
        Flask test client for making requests
    """
    return web_app.test_client()
