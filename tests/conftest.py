"""Pytest configuration for test environment setup.

- Forces ``DISABLE_FILE_LOGS=1`` to avoid writing log files during tests.
- Ensures the project root is available on ``sys.path`` for imports.
- Arms a per-test alarm so a hung coroutine fails fast instead of stalling.
"""

import json
import os
import signal
import sys
from pathlib import Path

import pytest

os.environ.setdefault("DISABLE_FILE_LOGS", "1")  # Avoid creating log files during tests

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

_TEST_TIMEOUT = int(os.environ.get("PYTEST_TEST_TIMEOUT", "10"))


def _timeout_handler(signum, frame):
    raise TimeoutError(f"Test exceeded {_TEST_TIMEOUT} seconds timeout")


def pytest_runtest_setup(item):
    signal.signal(signal.SIGALRM, _timeout_handler)
    signal.alarm(_TEST_TIMEOUT)


def pytest_runtest_teardown(item, nextitem):
    signal.alarm(0)


SITE_CONFIG_TEMPLATE = """export const siteConfig = {
  name: "Acme Plumbing",
  whatsappMessage: "Hello",
  nav: [],
  services: [
    {
      title: "Default Service",
      slug: "default-service",
    },
  ],
  homepage: {
    heroTitle: "Your Tagline Here",
  },
  about: {
    heading: "About",
  },
  contact: {
    phone: "(012) 345-6789",
  },
  reviews: {
    averageRating: 4.1,
    totalReviews: 3,
    items: [],
  },
  servicesPage: {
    heading: "Services",
  },
  legal: {
    registrations: [],
  },
};
"""


@pytest.fixture
def site_config_text() -> str:
    """A small site config with every section the content injector touches."""
    return SITE_CONFIG_TEMPLATE


@pytest.fixture
def write_json():
    """Return a helper that writes ``data`` as JSON to ``path``."""

    def _write(path: Path, data) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
