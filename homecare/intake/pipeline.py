"""
Intake 编排：resolve → validate → map → 注入 owner / status / category。

纯函数，不碰数据库；持久化、定价、通知在 services.submit_request 里做。
"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from .factory import resolve
from .types import IntakeResult, ReferenceLookup, RequestStatus
from .validation import validate_payload

logger = logging.getLogger(__name__)


def run_intake(
    category_id: Any,
    payload: Mapping[str, Any],
    owner_user_id: int,
    lookup: Optional[ReferenceLookup] = None,
    now: Optional[datetime] = None,
) -> IntakeResult:
    """
    Raises:
        UnsupportedCategoryError: category 未注册（不会返回 IntakeResult）

    校验失败时返回带 errors 的 IntakeResult，record 为 None，不会有半成品记录。
    """
    rule = resolve(category_id)

    errors = validate_payload(rule, payload, lookup=lookup, now=now)
    if errors:
        logger.info(
            "Intake rejected for category %s: invalid fields %s",
            rule.category_id, sorted(errors),
        )
        return IntakeResult(rule=rule, errors=errors)

    record = rule.map_to_canonical(payload)

    # 客户端传来的 category_id / status / user_id 一律不信任
    record.user_id = owner_user_id
    record.status = RequestStatus.SUBMITTED
    record.category_id = rule.category_id

    return IntakeResult(rule=rule, record=record)
