"""
所有 category 共用的字段归一化工具（纯函数，无状态）。

form-data / multipart / JSON 三种提交方式对同一个字段的表示并不一致，
这里统一成 CanonicalRequest 需要的形状。
归一化失败时返回 None，不抛异常；错误由校验层报告。
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional

TRUTHY_STRINGS = frozenset({"true", "1", "on", "yes"})
FALSY_STRINGS = frozenset({"false", "0", "off", "no"})

# id 字段都是 BigAutoField；超出范围的数字当作非法整数
BIGINT_MIN = -(2 ** 63)
BIGINT_MAX = 2 ** 63 - 1
MAX_INT_DIGITS = 19


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def build_full_name(payload: Mapping[str, Any]) -> Optional[str]:
    """first + last → "first last"；只有一个就用那一个；否则退回 full_name。"""
    first_name = payload.get("first_name")
    last_name = payload.get("last_name")

    if first_name and last_name:
        return f"{first_name} {last_name}".strip()
    if first_name:
        return first_name
    if last_name:
        return last_name
    return payload.get("full_name") or None


def normalize_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    if isinstance(value, (int, float)):
        return value == 1
    return False


def is_boolean_like(value: Any) -> bool:
    """校验用：能被 normalize_boolean 明确识别的值。"""
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        lowered = value.strip().lower()
        return lowered in TRUTHY_STRINGS or lowered in FALSY_STRINGS
    if isinstance(value, int):
        return value in (0, 1)
    return False


def decode_list(value: Any) -> Optional[list]:
    """
    把 list 字段的三种输入形状统一成 list：
      - list / tuple      → list
      - JSON 数组字符串    → 解码后的 list
      - 其他字符串         → [value]
    其余情况（包括坏掉的 JSON）返回 None。
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except ValueError:
                return None
            return decoded if isinstance(decoded, list) else None
        return [text]
    return None


def normalize_file_list(value: Any) -> Optional[list[str]]:
    """
    文件路径列表。上游应该已经把上传文件转成了存储路径，
    这里把没转换的残留对象（UploadedFile 等）直接丢掉，而不是报错。
    """
    items = decode_list(value)
    if items is None:
        return None
    paths = [item for item in items if isinstance(item, str) and item.strip()]
    return paths or None


def to_int(value: Any) -> Optional[int]:
    number = None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        # 只认 ASCII 数字，"²" 这类 unicode digit 不算
        digits = text[1:] if text.startswith("-") else text
        if text.isascii() and digits.isdigit() and len(digits) <= MAX_INT_DIGITS:
            number = int(text)

    if number is None or not BIGINT_MIN <= number <= BIGINT_MAX:
        return None
    return number


def normalize_int_list(value: Any) -> Optional[list[int]]:
    if isinstance(value, int) and not isinstance(value, bool):
        return [value]
    items = decode_list(value)
    if items is None:
        return None
    numbers = [number for number in (to_int(item) for item in items) if number is not None]
    return numbers or None


def normalize_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO 8601（允许空格分隔和结尾 Z）。naive 时间按 UTC 处理。"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        # 只接受纯日期，带时间的字符串不算
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def present_fields(payload: Mapping[str, Any], names: Iterable[str]) -> list[str]:
    return [name for name in names if not is_blank(payload.get(name))]


def exactly_one_error(payload: Mapping[str, Any], names: Iterable[str]) -> Optional[str]:
    """组内恰好一个字段有值 → None；否则返回错误信息。"""
    names = list(names)
    present = present_fields(payload, names)
    if len(present) == 1:
        return None

    joined = ", ".join(names)
    if not present:
        return f"Exactly one of {joined} must be provided."
    return f"Only one of {joined} may be provided, got {', '.join(present)}."
