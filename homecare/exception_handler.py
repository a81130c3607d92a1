"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上。
所有响应（无论成功还是失败）前端都能用同一套逻辑判断：
  response.type === 'error' / 'validation_error' / 'block' / 'not_found'  → 出问题了
  没有 type 字段  → 成功

统一错误响应格式：
{
    "type":    "validation_error" | "block" | "not_found",
    "code":    "REQUEST_VALIDATION_FAILED",
    "message": "The given data was invalid.",
    "detail":  { "errors": { "service_id": ["The service_id field is required."] } }  // 可选
}
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import APIException
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式
    2. DRF 自带的 ValidationError（serializer.is_valid raise 的）→ 转成统一格式
    3. 其他 DRF APIException（ParseError、UnsupportedMediaType ...）→ 统一格式
    4. 其他异常 → 交给 DRF 默认处理
    """

    # --- 1. 我们自己的异常体系 ---
    if isinstance(exc, BaseAppException):
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        if exc.http_status >= 500:
            logger.error("Unhandled app error %s: %s", exc.code, exc.message)
        return JsonResponse(body, status=exc.http_status)

    # --- 2. DRF 自带的 ValidationError ---
    if isinstance(exc, DRFValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    # --- 3. 其他 DRF 异常 ---
    if isinstance(exc, APIException):
        body = {
            'type': 'error',
            'code': str(exc.default_code).upper(),
            'message': str(exc.detail),
        }
        return JsonResponse(body, status=exc.status_code)

    # --- 4. 其他的交给 DRF 默认处理 ---
    return drf_default_handler(exc, context)
