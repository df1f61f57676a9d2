import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.listings.models import Listing


@pytest.fixture(autouse=True)
def clear_cache():
    # Guard windows and throttle history live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def seller(django_user_model):
    return django_user_model.objects.create_user(
        username="seller", email="seller@test.com", password="testpass123"
    )


@pytest.fixture
def buyer(django_user_model):
    return django_user_model.objects.create_user(
        username="buyer", email="buyer@test.com", password="testpass123"
    )


@pytest.fixture
def other_buyer(django_user_model):
    return django_user_model.objects.create_user(
        username="other_buyer", email="other@test.com", password="testpass123"
    )


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(
        username="staff", email="staff@test.com", password="testpass123", is_staff=True
    )


@pytest.fixture
def listing(seller):
    # R1,000.00
    return Listing.objects.create(seller=seller, title="Road bike", price=100_000)
