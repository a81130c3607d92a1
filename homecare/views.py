"""
DRF views — 只做 HTTP ↔ service 的转换。

所有业务异常直接往上抛，由 exception_handler.unified_exception_handler 统一格式化。
调用方身份来自 X-User-Id header（认证由网关负责，不在本服务内）。
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .exceptions import ValidationError
from .intake.normalizers import to_int
from .serializers import (
    serialize_request_created,
    serialize_request_detail,
    serialize_request_list,
    serialize_user_history,
)
from .uploads import build_payload

DEFAULT_CATEGORY_ID = 1


def get_owner_id(request):
    raw = request.headers.get('X-User-Id')
    user_id = to_int(raw)
    if user_id is None or user_id <= 0:
        raise ValidationError(
            message='X-User-Id header is required and must be a positive integer.',
            code='MISSING_USER_ID',
            detail={'x_user_id': raw},
        )
    return user_id


def _filters(request):
    return {key: request.query_params.get(key) for key in request.query_params}


# ---------------------------------------------------------------------------
# 用户端
# ---------------------------------------------------------------------------

class RequestCollectionView(APIView):
    """
    POST /api/requests/ — 提交请求，category 取自 body 的 category_id（默认 1）
    GET  /api/requests/ — 当前用户的请求列表
    """

    def post(self, request):
        user_id = get_owner_id(request)
        payload = build_payload(request.data, request.FILES)
        category_id = payload.get('category_id', DEFAULT_CATEGORY_ID)

        service_request = services.submit_request(category_id, payload, user_id)
        return Response(serialize_request_created(service_request), status=status.HTTP_201_CREATED)

    def get(self, request):
        user_id = get_owner_id(request)
        requests = services.list_user_requests(user_id, _filters(request))
        return Response(serialize_request_list(requests))


class CategoryRequestCreateView(APIView):
    """POST /api/categories/<id>/requests/ — category 以 URL 为准，body 里的值被忽略"""

    def post(self, request, category_id):
        user_id = get_owner_id(request)
        payload = build_payload(request.data, request.FILES)
        payload.pop('category_id', None)

        service_request = services.submit_request(category_id, payload, user_id)
        return Response(serialize_request_created(service_request), status=status.HTTP_201_CREATED)


class CategoryRulesView(APIView):
    """GET /api/categories/<id>/rules/"""

    def get(self, request, category_id):
        return Response(services.describe_category(category_id))


class RequestDetailView(APIView):
    """GET / DELETE /api/requests/<uuid>/ — 只能访问自己的请求"""

    def get(self, request, request_id):
        user_id = get_owner_id(request)
        service_request = services.get_request_detail(request_id, user_id=user_id)
        return Response(serialize_request_detail(
            service_request,
            time_needed_to_arrive=services.get_time_needed_to_arrive(service_request.id),
        ))

    def delete(self, request, request_id):
        user_id = get_owner_id(request)
        services.soft_delete_request(request_id, user_id=user_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# admin
# ---------------------------------------------------------------------------

class AdminRequestListView(APIView):
    """GET /api/admin/requests/?status=&category_id=&time_type=&nurse_gender="""

    def get(self, request):
        return Response(serialize_request_list(services.list_requests(_filters(request))))


class AdminRequestDetailView(APIView):
    """GET / PATCH /api/admin/requests/<uuid>/"""

    def get(self, request, request_id):
        service_request = services.get_request_detail(request_id)
        return Response(serialize_request_detail(
            service_request,
            time_needed_to_arrive=services.get_time_needed_to_arrive(service_request.id),
        ))

    def patch(self, request, request_id):
        service_request = services.update_request(request_id, build_payload(request.data))
        return Response(serialize_request_detail(
            service_request,
            time_needed_to_arrive=services.get_time_needed_to_arrive(service_request.id),
        ))


class AdminRequestStatusView(APIView):
    """POST /api/admin/requests/<uuid>/status/  {"status": "...", "nurse_id": 3}"""

    def post(self, request, request_id):
        data = build_payload(request.data)
        service_request = services.transition_status(
            request_id,
            data.get('status'),
            nurse_id=data.get('nurse_id'),
        )
        return Response(serialize_request_detail(service_request))


class AdminRequestAssignView(APIView):
    """POST /api/admin/requests/<uuid>/assign/  {"nurse_id": 3}"""

    def post(self, request, request_id):
        data = build_payload(request.data)
        service_request = services.assign_nurse(request_id, data.get('nurse_id'))
        return Response(serialize_request_detail(service_request))


class AdminRequestDiscountView(APIView):
    """POST /api/admin/requests/<uuid>/discount/  {"discount_percentage": 15}"""

    def post(self, request, request_id):
        data = build_payload(request.data)
        service_request = services.apply_discount(request_id, data.get('discount_percentage'))
        return Response(serialize_request_detail(service_request))


class AdminRequestRestoreView(APIView):
    """POST /api/admin/requests/<uuid>/restore/"""

    def post(self, request, request_id):
        service_request = services.restore_request(request_id)
        return Response(serialize_request_detail(service_request))


class AdminUserHistoryView(APIView):
    """GET /api/admin/users/<user_id>/requests/"""

    def get(self, request, user_id):
        requests, stats = services.get_user_request_history(user_id)
        return Response(serialize_user_history(requests, stats))
