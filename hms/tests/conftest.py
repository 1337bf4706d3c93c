import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from hms.tests import factories


@pytest.fixture(autouse=True)
def _clear_cache():
    # stats payloads and throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(db):
    """Return an authenticated APIClient for a fresh user with ``role``."""
    def _make(role, user=None):
        user = user or factories.make_user(role)
        client = APIClient()
        client.force_authenticate(user=user)
        client.user = user
        return client
    return _make


@pytest.fixture
def patient(db):
    return factories.make_patient()


@pytest.fixture
def doctor(db):
    return factories.make_doctor()
