from __future__ import annotations

import logging

import pytest

from fakes import RecordingSleep, preserved_root_logging


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture(autouse=True)
def _debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="slashdl")


@pytest.fixture
def restore_logging():
    with preserved_root_logging():
        yield
