"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import pytest
from datetime import timedelta
from decimal import Decimal
from django.test import Client
from django.utils import timezone

import factory
from homecare.intake.types import EntityType
from homecare.models import CatalogAreaPrice, CatalogItem, ServiceRequest


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class CatalogItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CatalogItem

    entity_type = EntityType.SERVICE
    name = factory.Sequence(lambda n: f'Catalog item {n}')
    price = Decimal('50.00')
    is_active = True


class CatalogAreaPriceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CatalogAreaPrice

    item = factory.SubFactory(CatalogItemFactory)
    area = factory.SubFactory(CatalogItemFactory, entity_type=EntityType.AREA, price=None)
    price = Decimal('65.00')


class ServiceRequestFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ServiceRequest

    user_id = 1
    category_id = 1
    status = 'submitted'
    full_name = 'Jane Doe'
    service_id = 7
    use_saved_address = True
    total_price = Decimal('50.00')
    discounted_price = Decimal('50.00')


# ---------------------------------------------------------------------------
# Lookup stub（纯单元测试用，不碰数据库）
# ---------------------------------------------------------------------------

class StubLookup:
    """
    known: {entity_type: {id, ...}}
    area_prices: {(entity_type, entity_id, area_id), ...}
    """

    def __init__(self, known=None, area_prices=None):
        self.known = known or {}
        self.area_prices = set(area_prices or ())

    def exists(self, entity_type, entity_id):
        return entity_id in self.known.get(entity_type, set())

    def has_area_price(self, entity_type, entity_id, area_id):
        return (entity_type, entity_id, area_id) in self.area_prices


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def in_one_hour(now):
    return (now + timedelta(hours=1)).isoformat()


@pytest.fixture
def catalog(db):
    """每种实体各一条，外加一个区域和该区域对 service 的区域价。"""
    items = {
        entity_type: CatalogItemFactory(entity_type=entity_type, name=f'{entity_type} one')
        for entity_type in EntityType.ALL
    }
    CatalogAreaPriceFactory(
        item=items[EntityType.SERVICE],
        area=items[EntityType.AREA],
        price=Decimal('65.00'),
    )
    return items


@pytest.fixture
def service_request_payload(catalog, in_one_hour):
    """Minimal valid category 1 payload for POST /api/requests/."""
    return {
        'category_id': 1,
        'service_id': catalog[EntityType.SERVICE].id,
        'first_name': 'Jane',
        'last_name': 'Doe',
        'phone_number': '0790000000',
        'use_saved_address': True,
        'nurse_gender': 'female',
        'scheduled_time': in_one_hour,
    }
