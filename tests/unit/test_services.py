"""
Unit tests for the service layer.

覆盖：submit_request, get_request_detail, update_request, apply_discount,
transition_status, assign_nurse, soft delete / restore, 列表和用户历史统计。
Celery task 被 mock 掉。
"""
import pytest
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.utils import timezone

from homecare.exceptions import (
    BlockError,
    NotFoundError,
    RequestValidationError,
    UnsupportedCategoryError,
    ValidationError,
)
from homecare.intake.types import EntityType
from homecare.models import ServiceRequest
from homecare.services import (
    apply_discount,
    assign_nurse,
    get_request_detail,
    get_time_needed_to_arrive,
    get_user_request_history,
    list_requests,
    list_user_requests,
    restore_request,
    soft_delete_request,
    submit_request,
    transition_status,
    update_request,
)
from tests.conftest import CatalogItemFactory, ServiceRequestFactory


@pytest.fixture(autouse=True)
def mock_notify():
    with patch('homecare.tasks.dispatch_request_notification') as mock_task:
        yield mock_task


@pytest.fixture
def nurse(db):
    return CatalogItemFactory(entity_type=EntityType.NURSE, name='Nurse Rana', price=None)


# ===================================================================
# submit_request
# ===================================================================

@pytest.mark.django_db
class TestSubmitRequest:

    def test_creates_canonical_record(self, service_request_payload, catalog, mock_notify):
        service_request = submit_request(1, service_request_payload, user_id=42)

        assert service_request.user_id == 42
        assert service_request.category_id == 1
        assert service_request.status == 'submitted'
        assert service_request.full_name == 'Jane Doe'
        assert service_request.service_id == catalog[EntityType.SERVICE].id
        assert service_request.ray_id is None
        assert ServiceRequest.objects.count() == 1
        mock_notify.delay.assert_called_once_with(str(service_request.id), 'request.created', None)

    def test_base_price_recorded(self, service_request_payload):
        service_request = submit_request(1, service_request_payload, user_id=42)

        assert service_request.total_price == Decimal('50.00')
        assert service_request.discounted_price == Decimal('50.00')

    def test_area_price_recorded(self, service_request_payload, catalog):
        service_request_payload['area_id'] = catalog[EntityType.AREA].id
        service_request = submit_request(1, service_request_payload, user_id=42)

        assert service_request.total_price == Decimal('65.00')

    def test_validation_errors_raise_422(self, service_request_payload, mock_notify):
        service_request_payload['service_id'] = 999999
        service_request_payload['nurse_gender'] = 'robot'

        with pytest.raises(RequestValidationError) as exc_info:
            submit_request(1, service_request_payload, user_id=42)

        assert exc_info.value.http_status == 422
        assert set(exc_info.value.errors) == {'service_id', 'nurse_gender'}
        assert ServiceRequest.objects.count() == 0
        mock_notify.delay.assert_not_called()

    def test_unsupported_category(self, service_request_payload):
        with pytest.raises(UnsupportedCategoryError):
            submit_request(9, service_request_payload, user_id=42)

    def test_duties_request(self, catalog):
        today = timezone.now().date()
        service_request = submit_request(7, {
            'duty_id': catalog[EntityType.DUTY].id,
            'duration_hours': 12,
            'is_day_shift': 'false',
            'from_date': today.isoformat(),
            'to_date': (today + timedelta(days=3)).isoformat(),
        }, user_id=42)

        service_request.refresh_from_db()
        assert service_request.duty_id == catalog[EntityType.DUTY].id
        assert service_request.duration_hours == 12
        assert service_request.is_day_shift is False
        assert service_request.nurse_visit_id is None


# ===================================================================
# 查询
# ===================================================================

@pytest.mark.django_db
class TestGetRequestDetail:

    def test_existing_request(self):
        service_request = ServiceRequestFactory()
        assert get_request_detail(service_request.id).id == service_request.id

    def test_nonexistent_request_raises(self):
        with pytest.raises(NotFoundError) as exc_info:
            get_request_detail(uuid.uuid4())

        assert exc_info.value.code == 'REQUEST_NOT_FOUND'
        assert exc_info.value.http_status == 404

    def test_other_users_request_is_hidden(self):
        service_request = ServiceRequestFactory(user_id=1)
        with pytest.raises(NotFoundError):
            get_request_detail(service_request.id, user_id=2)

    def test_owner_sees_soft_deleted_request(self):
        service_request = ServiceRequestFactory(user_id=1, is_deleted=True)
        assert get_request_detail(service_request.id, user_id=1).is_deleted is True

        with pytest.raises(NotFoundError):
            get_request_detail(service_request.id)


@pytest.mark.django_db
class TestListings:

    def test_admin_listing_excludes_deleted(self):
        ServiceRequestFactory()
        ServiceRequestFactory(is_deleted=True)
        assert list_requests().count() == 1

    def test_admin_filters(self):
        ServiceRequestFactory(category_id=1, status='submitted')
        ServiceRequestFactory(category_id=3, status='submitted')
        ServiceRequestFactory(category_id=3, status='cancelled')

        assert list_requests({'category_id': '3'}).count() == 2
        assert list_requests({'category_id': '3', 'status': 'cancelled'}).count() == 1

    def test_invalid_category_filter(self):
        with pytest.raises(ValidationError) as exc_info:
            list_requests({'category_id': 'abc'})
        assert exc_info.value.code == 'INVALID_FILTER'

    def test_user_listing_includes_own_deleted(self):
        ServiceRequestFactory(user_id=5)
        ServiceRequestFactory(user_id=5, is_deleted=True)
        ServiceRequestFactory(user_id=6)

        assert list_user_requests(5).count() == 2


@pytest.mark.django_db
class TestUserHistory:

    def test_stats(self):
        ServiceRequestFactory(
            user_id=8, status='completed', total_price=Decimal('100.00'),
            discount_percentage=Decimal('10.00'), discounted_price=Decimal('90.00'),
        )
        ServiceRequestFactory(user_id=8, total_price=Decimal('50.00'), discounted_price=Decimal('50.00'))
        ServiceRequestFactory(user_id=8, total_price=None, discounted_price=None)

        requests, stats = get_user_request_history(8)

        assert len(requests) == 3
        assert stats['total_requests'] == 3
        assert stats['completed_requests'] == 1
        assert stats['total_spent'] == Decimal('140.00')
        assert stats['total_savings'] == Decimal('10.00')
        assert stats['discounted_requests'] == 1
        assert stats['average_request_value'] == Decimal('75.00')

    def test_no_requests(self):
        requests, stats = get_user_request_history(404)
        assert requests == []
        assert stats['average_request_value'] == Decimal('0.00')


# ===================================================================
# admin 操作
# ===================================================================

@pytest.mark.django_db
class TestApplyDiscount:

    def test_full_discount_clamps_to_zero(self):
        service_request = ServiceRequestFactory(total_price=Decimal('50.00'))
        result = apply_discount(service_request.id, 100)

        assert result.discounted_price == Decimal('0.00')
        service_request.refresh_from_db()
        assert service_request.discount_percentage == Decimal('100.00')
        assert service_request.discounted_price == Decimal('0.00')

    def test_out_of_range_rejected(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(RequestValidationError) as exc_info:
            apply_discount(service_request.id, 150)

        assert 'discount_percentage' in exc_info.value.errors

    def test_missing_percentage_rejected(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(RequestValidationError):
            apply_discount(service_request.id, None)

    @pytest.mark.parametrize('percentage', ['NaN', 'Infinity', '-Infinity'])
    def test_non_finite_percentage_rejected(self, percentage):
        service_request = ServiceRequestFactory(total_price=Decimal('50.00'))
        with pytest.raises(RequestValidationError) as exc_info:
            apply_discount(service_request.id, percentage)

        assert 'discount_percentage' in exc_info.value.errors
        service_request.refresh_from_db()
        assert service_request.discount_percentage is None


@pytest.mark.django_db
class TestTransitionStatus:

    def test_assigned_requires_nurse(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(BlockError) as exc_info:
            transition_status(service_request.id, 'assigned')

        assert exc_info.value.code == 'NURSE_REQUIRED'

    def test_assign_with_nurse(self, nurse, mock_notify):
        service_request = ServiceRequestFactory()
        result = transition_status(service_request.id, 'assigned', nurse_id=nurse.id)

        assert result.status == 'assigned'
        assert result.nurse_id == nurse.id
        mock_notify.delay.assert_called_once_with(
            str(service_request.id), 'request.status_changed', {'from': 'submitted'},
        )

    def test_illegal_transition(self):
        service_request = ServiceRequestFactory(status='submitted')
        with pytest.raises(BlockError) as exc_info:
            transition_status(service_request.id, 'completed')

        assert exc_info.value.code == 'ILLEGAL_STATUS_TRANSITION'
        assert exc_info.value.http_status == 409
        assert exc_info.value.detail['allowed'] == ['assigned', 'cancelled']

    @pytest.mark.parametrize('terminal', ['completed', 'cancelled'])
    def test_terminal_states(self, terminal):
        service_request = ServiceRequestFactory(status=terminal)
        with pytest.raises(BlockError):
            transition_status(service_request.id, 'in_progress')

    def test_cancel_keeps_nurse(self, nurse):
        service_request = ServiceRequestFactory(status='in_progress', nurse_id=nurse.id)
        result = transition_status(service_request.id, 'cancelled')

        assert result.status == 'cancelled'
        assert result.nurse_id == nurse.id

    def test_nurse_rejected_when_cancelling_unassigned_request(self, nurse):
        service_request = ServiceRequestFactory(status='submitted')
        with pytest.raises(BlockError) as exc_info:
            transition_status(service_request.id, 'cancelled', nurse_id=nurse.id)

        assert exc_info.value.code == 'NURSE_ASSIGNMENT_NOT_ALLOWED'
        service_request.refresh_from_db()
        assert service_request.status == 'submitted'
        assert service_request.nurse_id is None

    def test_nurse_swap_allowed_while_in_progress(self, nurse):
        other = CatalogItemFactory(entity_type=EntityType.NURSE, price=None)
        service_request = ServiceRequestFactory(status='in_progress', nurse_id=other.id)
        result = transition_status(service_request.id, 'completed', nurse_id=nurse.id)

        assert result.status == 'completed'
        assert result.nurse_id == nurse.id

    def test_unknown_status(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(ValidationError) as exc_info:
            transition_status(service_request.id, 'paused')
        assert exc_info.value.code == 'INVALID_STATUS'

    def test_unknown_nurse(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(ValidationError) as exc_info:
            transition_status(service_request.id, 'assigned', nurse_id=999999)
        assert exc_info.value.code == 'NURSE_NOT_FOUND'


@pytest.mark.django_db
class TestAssignNurse:

    def test_submitted_becomes_assigned(self, nurse, mock_notify):
        service_request = ServiceRequestFactory()
        result = assign_nurse(service_request.id, nurse.id)

        assert result.status == 'assigned'
        assert result.nurse_id == nurse.id
        mock_notify.delay.assert_called_once_with(str(service_request.id), 'request.assigned', None)

    def test_reassign(self, nurse):
        other = CatalogItemFactory(entity_type=EntityType.NURSE, price=None)
        service_request = ServiceRequestFactory(status='assigned', nurse_id=other.id)

        assert assign_nurse(service_request.id, nurse.id).nurse_id == nurse.id

    def test_not_allowed_after_completion(self, nurse):
        service_request = ServiceRequestFactory(status='completed', nurse_id=nurse.id)
        with pytest.raises(BlockError) as exc_info:
            assign_nurse(service_request.id, nurse.id)
        assert exc_info.value.code == 'NURSE_ASSIGNMENT_NOT_ALLOWED'

    def test_invalid_nurse_id(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(ValidationError) as exc_info:
            assign_nurse(service_request.id, 'abc')
        assert exc_info.value.code == 'INVALID_NURSE_ID'


@pytest.mark.django_db
class TestUpdateRequest:

    def test_plain_fields(self):
        service_request = ServiceRequestFactory()
        result = update_request(service_request.id, {'full_name': 'John Roe', 'time_type': 'full-time'})

        assert result.full_name == 'John Roe'
        assert result.time_type == 'full-time'

    def test_invalid_fields_collected(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(RequestValidationError) as exc_info:
            update_request(service_request.id, {'time_type': 'weekly', 'discount_percentage': -5})

        assert set(exc_info.value.errors) == {'time_type', 'discount_percentage'}

    def test_ending_time_checked_against_stored_schedule(self):
        scheduled = timezone.now() + timedelta(days=1)
        service_request = ServiceRequestFactory(scheduled_time=scheduled)

        with pytest.raises(RequestValidationError) as exc_info:
            update_request(service_request.id, {'ending_time': (scheduled - timedelta(hours=1)).isoformat()})

        assert 'ending_time' in exc_info.value.errors

    def test_nurse_on_submitted_request_assigns(self, nurse, mock_notify):
        service_request = ServiceRequestFactory()
        result = update_request(service_request.id, {'nurse_id': nurse.id})

        assert result.status == 'assigned'
        assert result.nurse_id == nurse.id
        mock_notify.delay.assert_called_once_with(
            str(service_request.id), 'request.status_changed', {'from': 'submitted'},
        )

    def test_status_goes_through_state_machine(self):
        service_request = ServiceRequestFactory(status='completed')
        with pytest.raises(BlockError):
            update_request(service_request.id, {'status': 'submitted'})

    def test_discount_goes_through_clamp(self):
        service_request = ServiceRequestFactory(total_price=Decimal('50.00'))
        result = update_request(service_request.id, {'discount_percentage': '100'})

        assert result.discounted_price == Decimal('0.00')

    def test_non_finite_discount_is_a_field_error(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(RequestValidationError) as exc_info:
            update_request(service_request.id, {'discount_percentage': 'NaN'})
        assert set(exc_info.value.errors) == {'discount_percentage'}

    def test_status_with_nurse_on_submitted_request_rejected(self, nurse):
        service_request = ServiceRequestFactory()
        with pytest.raises(BlockError):
            update_request(service_request.id, {'status': 'cancelled', 'nurse_id': nurse.id})

        service_request.refresh_from_db()
        assert service_request.nurse_id is None

    def test_blank_discount_clears_it(self):
        service_request = ServiceRequestFactory(
            total_price=Decimal('50.00'),
            discount_percentage=Decimal('10.00'),
            discounted_price=Decimal('45.00'),
        )
        result = update_request(service_request.id, {'discount_percentage': None})

        assert result.discount_percentage is None
        assert result.discounted_price == Decimal('50.00')

    def test_time_needed_to_arrive_cached(self):
        service_request = ServiceRequestFactory()
        update_request(service_request.id, {'time_needed_to_arrive': 30})

        assert get_time_needed_to_arrive(service_request.id) == 30

    def test_time_needed_to_arrive_counts_down(self):
        service_request = ServiceRequestFactory()
        cache.set(
            f'time_needed_to_arrive_{service_request.id}',
            {'time_needed': 30, 'start_time': timezone.now() - timedelta(minutes=10, seconds=5)},
        )
        assert get_time_needed_to_arrive(service_request.id) == 20

    def test_time_needed_to_arrive_never_negative(self):
        service_request = ServiceRequestFactory()
        cache.set(
            f'time_needed_to_arrive_{service_request.id}',
            {'time_needed': 5, 'start_time': timezone.now() - timedelta(hours=1)},
        )
        assert get_time_needed_to_arrive(service_request.id) == 0


@pytest.mark.django_db
class TestSoftDelete:

    def test_soft_delete_and_restore(self, mock_notify):
        service_request = ServiceRequestFactory(user_id=3)
        soft_delete_request(service_request.id, user_id=3)

        assert not ServiceRequest.objects.filter(id=service_request.id).exists()
        deleted = ServiceRequest.all_objects.get(id=service_request.id)
        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None
        mock_notify.delay.assert_called_once_with(str(service_request.id), 'request.deleted', None)

        restored = restore_request(service_request.id)
        assert restored.is_deleted is False
        assert restored.deleted_at is None
        assert ServiceRequest.objects.filter(id=service_request.id).exists()

    def test_cannot_delete_twice(self):
        service_request = ServiceRequestFactory(user_id=3)
        soft_delete_request(service_request.id, user_id=3)

        with pytest.raises(NotFoundError):
            soft_delete_request(service_request.id, user_id=3)

    def test_cannot_delete_other_users_request(self):
        service_request = ServiceRequestFactory(user_id=3)
        with pytest.raises(NotFoundError):
            soft_delete_request(service_request.id, user_id=4)

    def test_restore_requires_deleted_request(self):
        service_request = ServiceRequestFactory()
        with pytest.raises(NotFoundError):
            restore_request(service_request.id)
