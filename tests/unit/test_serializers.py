"""
Unit tests for serializer functions.

覆盖 serialize_request_detail 的 category 字段过滤、价格明细，以及列表 / 用户历史。
"""
import pytest
from decimal import Decimal

from homecare.serializers import (
    serialize_request_created,
    serialize_request_detail,
    serialize_request_list,
    serialize_user_history,
)
from homecare.services import get_user_request_history
from tests.conftest import ServiceRequestFactory


@pytest.mark.django_db
class TestSerializeRequestDetail:

    def test_only_own_category_fields_in_details(self):
        service_request = ServiceRequestFactory(category_id=3, service_id=None, ray_id=4)
        result = serialize_request_detail(service_request)

        assert result['category_id'] == 3
        assert result['details'] == {'ray_id': 4, 'area_id': None, 'request_details_files': None}
        assert 'service_id' not in result['details']

    def test_pricing_block(self):
        service_request = ServiceRequestFactory(
            total_price=Decimal('80.00'),
            discount_percentage=Decimal('25.00'),
            discounted_price=Decimal('60.00'),
        )
        pricing = serialize_request_detail(service_request)['pricing']

        assert pricing['total_price'] == '80.00'
        assert pricing['final_price'] == '60.00'
        assert pricing['discount_amount'] == '20.00'
        assert pricing['has_discount'] is True

    def test_unpriced_request(self):
        service_request = ServiceRequestFactory(total_price=None, discounted_price=None)
        pricing = serialize_request_detail(service_request)['pricing']

        assert pricing['total_price'] is None
        assert pricing['final_price'] is None
        assert pricing['has_discount'] is False

    def test_time_needed_to_arrive_only_when_known(self):
        service_request = ServiceRequestFactory()

        assert 'time_needed_to_arrive' not in serialize_request_detail(service_request)
        assert serialize_request_detail(service_request, time_needed_to_arrive=15)['time_needed_to_arrive'] == 15

    def test_datetimes_are_iso_strings(self):
        service_request = ServiceRequestFactory()
        result = serialize_request_detail(service_request)

        assert isinstance(result['created_at'], str)
        assert result['deleted_at'] is None


@pytest.mark.django_db
class TestSerializeRequestCreated:

    def test_fields(self):
        service_request = ServiceRequestFactory()
        result = serialize_request_created(service_request)

        assert result['request_id'] == str(service_request.id)
        assert result['status'] == 'submitted'
        assert result['total_price'] == '50.00'
        # 不应有 type 字段（type 只在错误时出现）
        assert 'type' not in result


@pytest.mark.django_db
class TestSerializeListings:

    def test_request_list(self):
        ServiceRequestFactory()
        ServiceRequestFactory(status='cancelled')

        from homecare.models import ServiceRequest
        result = serialize_request_list(ServiceRequest.objects.all())

        assert result['count'] == 2
        assert {item['status'] for item in result['requests']} == {'submitted', 'cancelled'}

    def test_user_history_money_as_strings(self):
        ServiceRequestFactory(user_id=12, total_price=Decimal('40.00'), discounted_price=Decimal('40.00'))

        result = serialize_user_history(*get_user_request_history(12))

        assert result['user']['user_id'] == 12
        assert result['user']['total_requests'] == 1
        assert result['user']['total_spent'] == '40.00'
        assert result['requests'][0]['final_price'] == '40.00'
