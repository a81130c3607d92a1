"""
工厂函数：根据 category_id 返回对应的 CategoryRule。

新增 category 只需：
  1. 在 categories.py 写 spec + map 函数，建一个 CategoryRule
  2. 在此处 _REGISTRY 加一行
  不需要修改任何业务代码。
"""

from typing import Any

from ..exceptions import UnsupportedCategoryError
from .normalizers import to_int
from .types import CategoryRule


# ── 注册表 ──────────────────────────────────────────────────────────────────
# key: category_id（来自 URL 或请求体）
# value: CategoryRule 实例（无状态，可共享）
def _build_registry() -> dict[int, CategoryRule]:
    # 延迟导入，避免循环依赖
    from .categories import (
        DOCTORS,
        DUTIES,
        MACHINES,
        OFFERS,
        PHYSIOTHERAPISTS,
        RAYS,
        SERVICE_REQUEST,
        TESTS,
    )

    return {
        1: SERVICE_REQUEST,
        2: TESTS,
        3: RAYS,
        4: MACHINES,
        5: PHYSIOTHERAPISTS,
        6: OFFERS,            # 占位，is_stub=True
        7: DUTIES,
        8: DOCTORS,
    }


def known_categories() -> list[int]:
    return sorted(_build_registry())


def _coerce_category_id(category_id: Any):
    if isinstance(category_id, (int, str)):
        return to_int(category_id)
    return None


def resolve(category_id: Any) -> CategoryRule:
    """
    根据 category_id 返回 CategoryRule。

    Args:
        category_id: int 或纯数字字符串（URL 参数、form-data 都是字符串）

    Raises:
        UnsupportedCategoryError: 非整数或未注册的 category
    """
    registry = _build_registry()
    rule = registry.get(_coerce_category_id(category_id))

    if rule is None:
        raise UnsupportedCategoryError(category_id, known_categories=sorted(registry))

    return rule
