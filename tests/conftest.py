import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before any domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def fresh_settings_and_catalog(monkeypatch):
    """Every test starts from default settings and an empty catalog."""
    from ordering.catalog import reset_catalog
    from ordering.settings import reset_settings

    for name in ("ORDERING_REQUIRE_TRACKING", "ORDERING_PERSISTENCE_TIMEOUT", "ORDERING_CURRENCY", "CATALOG_ADAPTER"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    reset_catalog()
    yield
    reset_settings()
    reset_catalog()
