"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full delivery journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_serializers.py, test_adapters.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_handlers.py",
        "test_escrow_service.py",
        "test_settlement_service.py",
        "test_refund_service.py",
        "test_locking.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_exceptions.py",
        "test_fsm.py",
        "test_adapters.py",
        "test_stripe_adapter.py",
        "test_paystack_adapter.py",
        "test_locks.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e", "redis"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


class InMemoryRedis:
    """
    The two Redis calls DistributedLock makes, kept in a dict.

    SET NX honours existing keys so lock contention still behaves; EX is
    accepted and ignored.
    """

    def __init__(self):
        self.store = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture(autouse=True)
def in_memory_locks(request, mocker):
    """Serve request locks from memory unless a test asks for real Redis."""
    if request.node.get_closest_marker("redis"):
        yield None
        return
    redis = InMemoryRedis()
    mocker.patch("payments.locks.get_redis_connection", return_value=redis)
    yield redis


@pytest.fixture
def fake_provider(mocker):
    """
    Replace the registered providers with one FakeProvider named "stripe".

    Services built without an explicit registry pick it up through
    get_registry().
    """
    from django.apps import apps

    from payments.adapters import ProviderRegistry
    from payments.tests.fakes import FakeProvider

    provider = FakeProvider("stripe")
    mocker.patch.object(
        apps.get_app_config("payments"),
        "provider_registry",
        ProviderRegistry({"stripe": provider}),
    )
    return provider
