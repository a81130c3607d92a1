"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / block / not_found）
- code:        业务错误码（UNSUPPORTED_CATEGORY / INVALID_STATUS_TRANSITION / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

View 层只需 raise，exception_handler 统一捕获并格式化响应。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入格式不对（header、query 参数、admin 表单）。400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class UnsupportedCategoryError(ValidationError):
    """category_id 不在 registry 里。"""

    code = 'UNSUPPORTED_CATEGORY'

    def __init__(self, category_id, known_categories=()):
        super().__init__(
            message=f"Unsupported category: {category_id!r}.",
            detail={'known_categories': list(known_categories)},
        )
        self.category_id = category_id


class RequestValidationError(ValidationError):
    """
    category 规则校验失败。422。

    errors 是完整的 field → [messages]，一次性返回给前端，不 fail fast。
    """

    code = 'REQUEST_VALIDATION_FAILED'
    http_status = 422

    def __init__(self, errors, message='The given data was invalid.'):
        self.errors = errors
        super().__init__(message=message, detail={'errors': errors})


class BlockError(BaseAppException):
    """业务规则阻止操作（非法状态流转、缺少护士等）。service 层抛出，409。"""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class NotFoundError(BaseAppException):
    """请求记录不存在或已被软删除。404。"""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404
