"""
Response serializers — ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
输入解析和校验在 homecare/intake/ 的 category 规则里。
"""

from .intake.types import CATEGORY_FIELDS

COMMON_FIELDS = (
    'first_name', 'last_name', 'full_name', 'phone_number', 'problem_description',
    'nurse_gender', 'name', 'location', 'use_saved_address', 'address_city',
    'address_street', 'address_building', 'address_additional_information',
    'additional_information', 'notes',
)


def _iso(value):
    return value.isoformat() if value is not None else None


def _money(value):
    return str(value) if value is not None else None


def _value(service_request, name):
    value = getattr(service_request, name)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value


def _pricing(service_request):
    return {
        'total_price': _money(service_request.total_price),
        'discount_percentage': _money(service_request.discount_percentage),
        'discounted_price': _money(service_request.discounted_price),
        'final_price': _money(service_request.final_price),
        'discount_amount': _money(service_request.discount_amount),
        'has_discount': service_request.has_discount,
    }


def serialize_request_created(service_request):
    """Serialize request for 201 creation response."""
    return {
        'request_id': str(service_request.id),
        'category_id': service_request.category_id,
        'status': service_request.status,
        'total_price': _money(service_request.total_price),
        'message': 'Request received.',
        'created_at': _iso(service_request.created_at),
    }


def serialize_request_detail(service_request, time_needed_to_arrive=None):
    """
    完整详情：通用字段 + 本 category 自己的字段（其他 category 的字段不输出）。
    """
    response = {
        'request_id': str(service_request.id),
        'user_id': service_request.user_id,
        'category_id': service_request.category_id,
        'status': service_request.status,
        'nurse_id': service_request.nurse_id,
        'is_deleted': service_request.is_deleted,
        'deleted_at': _iso(service_request.deleted_at),
        'created_at': _iso(service_request.created_at),
        'updated_at': _iso(service_request.updated_at),
    }
    response.update({name: _value(service_request, name) for name in COMMON_FIELDS})
    response['details'] = {
        name: _value(service_request, name)
        for name in CATEGORY_FIELDS.get(service_request.category_id, ())
    }
    response['pricing'] = _pricing(service_request)

    if time_needed_to_arrive is not None:
        response['time_needed_to_arrive'] = time_needed_to_arrive

    return response


def serialize_request_summary(service_request):
    return {
        'request_id': str(service_request.id),
        'category_id': service_request.category_id,
        'status': service_request.status,
        'full_name': service_request.full_name,
        'nurse_id': service_request.nurse_id,
        'scheduled_time': _iso(service_request.scheduled_time),
        'final_price': _money(service_request.final_price),
        'is_deleted': service_request.is_deleted,
        'created_at': _iso(service_request.created_at),
    }


def serialize_request_list(requests):
    """Serialize request listing."""
    results = [serialize_request_summary(item) for item in requests]
    return {
        'count': len(results),
        'requests': results,
    }


def serialize_user_history(requests, stats):
    """admin 用户历史：统计 + 每个请求的价格明细。"""
    return {
        'user': {
            **stats,
            'total_spent': _money(stats['total_spent']),
            'total_savings': _money(stats['total_savings']),
            'average_request_value': _money(stats['average_request_value']),
        },
        'requests': [
            {
                'request_id': str(item.id),
                'category_id': item.category_id,
                'status': item.status,
                'nurse_id': item.nurse_id,
                'scheduled_time': _iso(item.scheduled_time),
                'created_at': _iso(item.created_at),
                **_pricing(item),
            }
            for item in requests
        ],
    }
