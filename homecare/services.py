import logging
from decimal import Decimal

from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from .exceptions import BlockError, NotFoundError, RequestValidationError, ValidationError
from .intake import RequestStatus, resolve, run_intake
from .intake.normalizers import is_blank, normalize_string, parse_datetime, to_int
from .intake.types import NURSE_GENDERS, TIME_TYPES, EntityType
from .intake.validation import (
    After,
    Between,
    DateTime,
    Exists,
    Integer,
    Min,
    OneOf,
    Required,
    String,
    validate_fields,
)
from .lookups import CatalogLookup
from .models import ALLOWED_TRANSITIONS, ServiceRequest
from .pricing import CENT, discounted_price, quote_price

logger = logging.getLogger(__name__)

ARRIVAL_CACHE_TIMEOUT = 3600  # 秒

# admin 可修改的字段（部分更新，没传的字段不动）
UPDATE_SPEC = {
    'full_name': (String(255),),
    'phone_number': (String(20),),
    'name': (String(255),),
    'problem_description': (String(),),
    'nurse_gender': (String(), OneOf(NURSE_GENDERS)),
    'time_type': (String(), OneOf(TIME_TYPES)),
    'location': (String(),),
    'scheduled_time': (DateTime(),),
    'ending_time': (DateTime(), After('scheduled_time')),
    'status': (String(), OneOf(RequestStatus.ALL)),
    'nurse_id': (Integer(), Exists(EntityType.NURSE)),
    'discount_percentage': (Between(0, 100),),
    'time_needed_to_arrive': (Integer(), Min(1)),
}

TEXT_UPDATE_FIELDS = (
    'full_name', 'phone_number', 'name', 'problem_description',
    'nurse_gender', 'time_type', 'location',
)
LIST_FILTERS = ('status', 'time_type', 'nurse_gender')

# 这些状态下请求才能带 nurse_id
NURSE_STATUSES = (RequestStatus.ASSIGNED, RequestStatus.IN_PROGRESS)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _notify(service_request, event, data=None):
    # 延迟导入，避免 Celery app 在 Django 启动前加载
    from homecare.tasks import dispatch_request_notification
    dispatch_request_notification.delay(str(service_request.id), event, data)


def _get_request(request_id, user_id=None):
    """
    admin（user_id=None）只能看到未删除的记录；
    owner 能看到自己所有的记录，包括软删除的。
    """
    if user_id is None:
        queryset = ServiceRequest.objects.all()
    else:
        queryset = ServiceRequest.all_objects.filter(user_id=user_id)

    try:
        return queryset.get(id=request_id)
    except ServiceRequest.DoesNotExist:
        raise NotFoundError(
            message='Request not found',
            code='REQUEST_NOT_FOUND',
            detail={'request_id': str(request_id)},
        )


def _set_discount(service_request, percentage):
    """折扣统一入口：折后价永远 ≥ 0。percentage 为 None 表示清除折扣。"""
    service_request.discount_percentage = (
        None if percentage is None else Decimal(str(percentage))
    )
    service_request.discounted_price = discounted_price(
        service_request.total_price, service_request.discount_percentage,
    )


def _apply_transition(service_request, status, nurse_id=None):
    """
    状态机检查 + 护士约束（assigned 之后 nurse_id 才能有值）。
    只修改对象，不保存。
    """
    current = service_request.status
    if not service_request.can_transition_to(status):
        raise BlockError(
            message=f"Cannot move request from '{current}' to '{status}'.",
            code='ILLEGAL_STATUS_TRANSITION',
            detail={
                'from': current,
                'to': status,
                'allowed': list(ALLOWED_TRANSITIONS.get(current, ())),
            },
        )

    if nurse_id is not None:
        if status != RequestStatus.ASSIGNED and current not in NURSE_STATUSES:
            raise BlockError(
                message=f"Cannot assign a nurse to a '{current}' request moving to '{status}'.",
                code='NURSE_ASSIGNMENT_NOT_ALLOWED',
                detail={'from': current, 'to': status},
            )
        service_request.nurse_id = nurse_id

    if status == RequestStatus.ASSIGNED and service_request.nurse_id is None:
        raise BlockError(
            message='A nurse must be assigned before the request can move to assigned.',
            code='NURSE_REQUIRED',
            detail={'request_id': str(service_request.id)},
        )

    service_request.status = status
    logger.info("Request %s: %s -> %s", service_request.id, current, status)


def _ensure_nurse_exists(nurse_id):
    if not CatalogLookup().exists(EntityType.NURSE, nurse_id):
        raise ValidationError(
            message=f"Nurse {nurse_id} does not exist.",
            code='NURSE_NOT_FOUND',
            detail={'nurse_id': nurse_id},
        )


# ---------------------------------------------------------------------------
# intake
# ---------------------------------------------------------------------------

def submit_request(category_id, payload, user_id):
    """
    resolve → validate → map → price → persist → notify。

    Raises:
        UnsupportedCategoryError: category 未注册（400）
        RequestValidationError:   字段校验失败，detail.errors 是完整的 field → messages（422）
    """
    result = run_intake(category_id, payload, user_id, lookup=CatalogLookup())
    if not result.ok:
        raise RequestValidationError(result.errors)

    record = result.record
    record.total_price = quote_price(record)
    record.discounted_price = record.total_price

    with transaction.atomic():
        service_request = ServiceRequest.objects.create(**record.as_model_fields())

    logger.info(
        "Request %s created: category=%s user=%s total_price=%s",
        service_request.id, service_request.category_id, user_id, service_request.total_price,
    )

    from homecare.tasks import REQUEST_CREATED
    _notify(service_request, REQUEST_CREATED)

    return service_request


def describe_category(category_id):
    """GET /api/categories/<id>/rules/ 用：返回该 category 的校验规则。"""
    return resolve(category_id).describe()


# ---------------------------------------------------------------------------
# 查询
# ---------------------------------------------------------------------------

def get_request_detail(request_id, user_id=None):
    """Get request by ID. Raises NotFoundError if not found."""
    return _get_request(request_id, user_id=user_id)


def get_time_needed_to_arrive(request_id):
    """
    护士预计到达的剩余分钟数（admin 更新时写入 cache，1 小时过期）。
    cache 里没有时返回 None。
    """
    cached = cache.get(f'time_needed_to_arrive_{request_id}')
    if not cached:
        return None

    elapsed_minutes = int((timezone.now() - cached['start_time']).total_seconds() // 60)
    return max(cached['time_needed'] - elapsed_minutes, 0)


def _filter_requests(queryset, filters):
    filters = filters or {}
    for name in LIST_FILTERS:
        value = filters.get(name)
        if not is_blank(value):
            queryset = queryset.filter(**{name: value})

    category_id = filters.get('category_id')
    if not is_blank(category_id):
        parsed = to_int(category_id)
        if parsed is None:
            raise ValidationError(
                message='category_id filter must be an integer.',
                code='INVALID_FILTER',
                detail={'category_id': category_id},
            )
        queryset = queryset.filter(category_id=parsed)

    return queryset


def list_requests(filters=None):
    """admin 列表：不含软删除的记录。"""
    return _filter_requests(ServiceRequest.objects.all(), filters).order_by('-created_at')


def list_user_requests(user_id, filters=None):
    """owner 列表：包含自己软删除的记录。"""
    queryset = ServiceRequest.all_objects.filter(user_id=user_id)
    return _filter_requests(queryset, filters).order_by('-created_at')


def get_user_request_history(user_id):
    """
    admin 查看某个用户的全部请求 + 消费统计。
    Returns: (requests list, stats dict)
    """
    requests = list(ServiceRequest.objects.filter(user_id=user_id).order_by('-created_at'))

    priced = [item.total_price for item in requests if item.total_price is not None]
    stats = {
        'user_id': user_id,
        'total_requests': len(requests),
        'completed_requests': sum(1 for item in requests if item.status == RequestStatus.COMPLETED),
        'total_spent': sum((item.final_price or Decimal('0') for item in requests), Decimal('0')),
        'total_savings': sum((item.discount_amount for item in requests), Decimal('0')),
        'discounted_requests': sum(1 for item in requests if item.has_discount),
        'average_request_value': (
            (sum(priced) / len(priced)).quantize(CENT) if priced else Decimal('0.00')
        ),
    }
    return requests, stats


# ---------------------------------------------------------------------------
# admin 操作
# ---------------------------------------------------------------------------

def update_request(request_id, data):
    """
    admin 部分更新。

    - 文本 / 时间字段直接覆盖
    - nurse_id：submitted 状态下指派护士会自动流转到 assigned
    - status：走状态机
    - discount_percentage：走折扣 clamp，空值表示清除折扣
    - time_needed_to_arrive：只写 cache，不落库
    """
    service_request = _get_request(request_id)

    # ending_time 的顺序校验需要看到库里现有的 scheduled_time
    context = {
        'scheduled_time': service_request.scheduled_time,
        'ending_time': service_request.ending_time,
        **data,
    }
    spec = {name: constraints for name, constraints in UPDATE_SPEC.items() if name in data}
    if 'scheduled_time' in data:
        spec.setdefault('ending_time', UPDATE_SPEC['ending_time'])

    errors = validate_fields(spec, context, lookup=CatalogLookup())
    if errors:
        raise RequestValidationError(errors)

    previous_status = service_request.status

    with transaction.atomic():
        for name in TEXT_UPDATE_FIELDS:
            if name in data:
                setattr(service_request, name, normalize_string(data[name]))

        for name in ('scheduled_time', 'ending_time'):
            if name in data:
                setattr(service_request, name, parse_datetime(data[name]))

        nurse_id = to_int(data.get('nurse_id'))
        status = data.get('status') or None

        if nurse_id is not None and status is None and service_request.status == RequestStatus.SUBMITTED:
            status = RequestStatus.ASSIGNED

        if status is not None and status != service_request.status:
            _apply_transition(service_request, status, nurse_id=nurse_id)
        elif nurse_id is not None:
            if service_request.status not in NURSE_STATUSES:
                raise BlockError(
                    message=f"Cannot assign a nurse to a '{service_request.status}' request.",
                    code='NURSE_ASSIGNMENT_NOT_ALLOWED',
                    detail={'status': service_request.status},
                )
            service_request.nurse_id = nurse_id

        if 'discount_percentage' in data:
            percentage = data['discount_percentage']
            _set_discount(service_request, None if is_blank(percentage) else percentage)

        service_request.save()

    arrival = to_int(data.get('time_needed_to_arrive'))
    if arrival is not None:
        cache.set(
            f'time_needed_to_arrive_{service_request.id}',
            {'time_needed': arrival, 'start_time': timezone.now()},
            ARRIVAL_CACHE_TIMEOUT,
        )

    from homecare.tasks import REQUEST_STATUS_CHANGED, REQUEST_UPDATED
    if service_request.status != previous_status:
        _notify(service_request, REQUEST_STATUS_CHANGED, {'from': previous_status})
    else:
        _notify(service_request, REQUEST_UPDATED)

    return service_request


def apply_discount(request_id, discount_percentage):
    """discounted_price = max(0, total_price × (1 − pct/100))。"""
    errors = validate_fields(
        {'discount_percentage': (Required(), Between(0, 100))},
        {'discount_percentage': discount_percentage},
    )
    if errors:
        raise RequestValidationError(errors)

    service_request = _get_request(request_id)
    with transaction.atomic():
        _set_discount(service_request, discount_percentage)
        service_request.save(update_fields=['discount_percentage', 'discounted_price', 'updated_at'])

    logger.info(
        "Request %s discount %s%% -> %s",
        service_request.id, service_request.discount_percentage, service_request.discounted_price,
    )
    return service_request


def transition_status(request_id, status, nurse_id=None):
    """
    Raises:
        ValidationError: 未知状态 / 护士不存在（400）
        BlockError:      非法流转或 assigned 缺护士（409）
    """
    if status not in RequestStatus.ALL:
        raise ValidationError(
            message=f"Unknown status: {status!r}.",
            code='INVALID_STATUS',
            detail={'allowed': list(RequestStatus.ALL)},
        )

    nurse_id = to_int(nurse_id)
    if nurse_id is not None:
        _ensure_nurse_exists(nurse_id)

    service_request = _get_request(request_id)
    previous_status = service_request.status

    with transaction.atomic():
        _apply_transition(service_request, status, nurse_id=nurse_id)
        service_request.save(update_fields=['status', 'nurse_id', 'updated_at'])

    from homecare.tasks import REQUEST_STATUS_CHANGED
    _notify(service_request, REQUEST_STATUS_CHANGED, {'from': previous_status})
    return service_request


def assign_nurse(request_id, nurse_id):
    """
    submitted → assigned 并写入 nurse_id；已经 assigned 的请求可以换护士。
    """
    parsed = to_int(nurse_id)
    if parsed is None:
        raise ValidationError(
            message='nurse_id must be an integer.',
            code='INVALID_NURSE_ID',
            detail={'nurse_id': nurse_id},
        )
    _ensure_nurse_exists(parsed)

    service_request = _get_request(request_id)

    with transaction.atomic():
        if service_request.status == RequestStatus.SUBMITTED:
            _apply_transition(service_request, RequestStatus.ASSIGNED, nurse_id=parsed)
        elif service_request.status == RequestStatus.ASSIGNED:
            service_request.nurse_id = parsed
        else:
            raise BlockError(
                message=f"Cannot assign a nurse to a '{service_request.status}' request.",
                code='NURSE_ASSIGNMENT_NOT_ALLOWED',
                detail={'status': service_request.status},
            )
        service_request.save(update_fields=['status', 'nurse_id', 'updated_at'])

    logger.info("Request %s assigned to nurse %s", service_request.id, parsed)

    from homecare.tasks import REQUEST_ASSIGNED
    _notify(service_request, REQUEST_ASSIGNED)
    return service_request


def soft_delete_request(request_id, user_id=None):
    """标记删除，数据保留。owner 只能删自己的请求。"""
    service_request = _get_request(request_id, user_id=user_id)
    if service_request.is_deleted:
        raise NotFoundError(
            message='Request not found',
            code='REQUEST_NOT_FOUND',
            detail={'request_id': str(request_id)},
        )

    service_request.is_deleted = True
    service_request.deleted_at = timezone.now()
    service_request.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])
    logger.info("Request %s soft-deleted", service_request.id)

    from homecare.tasks import REQUEST_DELETED
    _notify(service_request, REQUEST_DELETED)
    return service_request


def restore_request(request_id):
    try:
        service_request = ServiceRequest.all_objects.get(id=request_id, is_deleted=True)
    except ServiceRequest.DoesNotExist:
        raise NotFoundError(
            message='Deleted request not found',
            code='REQUEST_NOT_FOUND',
            detail={'request_id': str(request_id)},
        )

    service_request.is_deleted = False
    service_request.deleted_at = None
    service_request.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])
    logger.info("Request %s restored", service_request.id)
    return service_request
