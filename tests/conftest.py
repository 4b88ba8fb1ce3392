"""Shared fixtures."""

from __future__ import annotations

import logging

import pytest

from serviceuser.log import LOGGER_NAME
from tests.fakes import FakeClock, FakeCoreV1Api


@pytest.fixture(autouse=True)
def _reset_serviceuser_logger():
    """Drop handlers the CLI installs so they don't outlive CliRunner's streams."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_core() -> FakeCoreV1Api:
    return FakeCoreV1Api()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
