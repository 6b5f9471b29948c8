import logging

import pytest


@pytest.fixture(autouse=True)
def quiet_driver_logging():
    logging.getLogger("mysql.connector").setLevel(logging.WARNING)
    yield


def pytest_configure(config):
    config.addinivalue_line("markers", "concurrency: test starts real threads against the in-memory store")
