import os
from pathlib import Path

import pytest

_LAYER_MARKERS = {
    "domain": pytest.mark.domain,
    "application": pytest.mark.application,
    "integration": pytest.mark.integration,
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config environment and keep adapters on their in-memory fakes,
    whatever the developer's shell has exported.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    for adapter in ("PAYMENT_GATEWAY", "RATE_API", "SHIPMENT_LOOKUP", "EMAIL_ADAPTER"):
        os.environ.pop(adapter, None)


def pytest_collection_modifyitems(config, items):
    """Mark each test with its layer, taken from the directory it lives in."""
    for item in items:
        layer = next((part for part in Path(item.fspath).parts if part in _LAYER_MARKERS), None)
        if layer is None:
            continue
        item.add_marker(_LAYER_MARKERS[layer])

        # Pure logic runs fast; the HTTP stack does not
        if layer == "domain":
            item.add_marker(pytest.mark.fast)
        elif layer == "integration" and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)
