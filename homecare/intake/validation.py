"""
声明式校验引擎。

每个 category 的 validation spec 是 field → constraint tuple 的有序 mapping：

    "service_id": (Required(), Integer(), Exists(EntityType.SERVICE)),

规则：
  1. 先看 Presence 类约束（Required / RequiredWithout / ...），必填却为空 → 报错，跳过该字段其余约束
  2. 值为空且非必填 → 直接通过（相当于 nullable）
  3. 其余约束按顺序执行，同一字段遇到第一个失败就停
  4. 所有字段都会被检查，错误全部收集，不会 fail fast
  5. 字段之后再跑 group 规则（ExactlyOneOf），错误合并进对应字段
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional

from .normalizers import (
    decode_list,
    exactly_one_error,
    is_blank,
    is_boolean_like,
    normalize_boolean,
    parse_date,
    parse_datetime,
    to_int,
)
from .types import ReferenceLookup, ValidationErrorSet


@dataclass(frozen=True)
class ValidationContext:
    payload: Mapping[str, Any]
    lookup: Optional[ReferenceLookup] = None
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def value(self, name: str) -> Any:
        return self.payload.get(name)


def _number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    # NaN / Infinity 不能参与比较
    return number if number.is_finite() else None


def _extension(path: str) -> str:
    return path.rsplit(".", 1)[-1].lower() if "." in path else ""


# ── 约束基类 ───────────────────────────────────────────────────────────────

class Constraint:
    label = ""

    def check(self, name: str, value: Any, ctx: ValidationContext) -> Optional[str]:
        return None

    def __str__(self) -> str:
        return self.label


class Presence(Constraint):
    """必填类约束：只决定「是否必填」，不检查值本身。"""

    def is_required(self, name: str, ctx: ValidationContext) -> bool:
        raise NotImplementedError

    def message(self, name: str) -> str:
        return f"The {name} field is required."


class Required(Presence):
    label = "required"

    def is_required(self, name, ctx):
        return True


class RequiredWithout(Presence):
    """其他字段全部为空时必填。"""

    def __init__(self, *others: str):
        self.others = others

    def is_required(self, name, ctx):
        return all(is_blank(ctx.value(other)) for other in self.others)

    def message(self, name):
        return f"The {name} field is required when {' / '.join(self.others)} is not present."

    def __str__(self):
        return f"required_without:{','.join(self.others)}"


class RequiredWith(Presence):
    """另一个字段有值时必填。"""

    def __init__(self, other: str):
        self.other = other

    def is_required(self, name, ctx):
        return not is_blank(ctx.value(self.other))

    def message(self, name):
        return f"The {name} field is required when {self.other} is present."

    def __str__(self):
        return f"required_with:{self.other}"


class RequiredUnlessTrue(Presence):
    """布尔标记（归一化后）不为 true 时必填，例如 use_saved_address。"""

    def __init__(self, flag: str):
        self.flag = flag

    def is_required(self, name, ctx):
        return not normalize_boolean(ctx.value(self.flag))

    def message(self, name):
        return f"The {name} field is required unless {self.flag} is true."

    def __str__(self):
        return f"required_unless_true:{self.flag}"


class RequiredWhen(Presence):
    """任意条件的必填，description 用于错误信息和 describe()。"""

    def __init__(self, predicate: Callable[[Mapping[str, Any]], bool], description: str):
        self.predicate = predicate
        self.description = description

    def is_required(self, name, ctx):
        return bool(self.predicate(ctx.payload))

    def message(self, name):
        return f"The {name} field is required when {self.description}."

    def __str__(self):
        return f"required_when:{self.description}"


# ── 类型 / 取值约束 ────────────────────────────────────────────────────────

class Integer(Constraint):
    label = "integer"

    def check(self, name, value, ctx):
        if to_int(value) is None:
            return f"The {name} field must be an integer."
        return None


class String(Constraint):
    def __init__(self, max_length: Optional[int] = None):
        self.max_length = max_length

    def check(self, name, value, ctx):
        if not isinstance(value, str):
            return f"The {name} field must be a string."
        if self.max_length is not None and len(value) > self.max_length:
            return f"The {name} field may not be greater than {self.max_length} characters."
        return None

    def __str__(self):
        return "string" if self.max_length is None else f"string|max:{self.max_length}"


class Boolean(Constraint):
    label = "boolean"

    def check(self, name, value, ctx):
        if not is_boolean_like(value):
            return f"The {name} field must be true or false."
        return None


class DateTime(Constraint):
    label = "datetime"

    def check(self, name, value, ctx):
        if parse_datetime(value) is None:
            return f"The {name} field is not a valid date."
        return None


class Date(Constraint):
    label = "date"

    def check(self, name, value, ctx):
        if parse_date(value) is None:
            return f"The {name} field is not a valid date."
        return None


class OneOf(Constraint):
    def __init__(self, choices: Iterable[Any]):
        self.choices = tuple(choices)

    def check(self, name, value, ctx):
        if all(isinstance(choice, int) for choice in self.choices):
            candidate = to_int(value)
        else:
            candidate = value
        if candidate not in self.choices:
            return f"The selected {name} is invalid. Allowed: {', '.join(map(str, self.choices))}."
        return None

    def __str__(self):
        return f"in:{','.join(map(str, self.choices))}"


class Between(Constraint):
    def __init__(self, minimum=None, maximum=None):
        self.minimum = minimum
        self.maximum = maximum

    def check(self, name, value, ctx):
        number = _number(value)
        if number is None:
            return f"The {name} field must be a number."
        if self.minimum is not None and number < Decimal(str(self.minimum)):
            return f"The {name} field must be at least {self.minimum}."
        if self.maximum is not None and number > Decimal(str(self.maximum)):
            return f"The {name} field may not be greater than {self.maximum}."
        return None

    def __str__(self):
        parts = []
        if self.minimum is not None:
            parts.append(f"min:{self.minimum}")
        if self.maximum is not None:
            parts.append(f"max:{self.maximum}")
        return "|".join(parts)


class Min(Between):
    def __init__(self, minimum):
        super().__init__(minimum=minimum)


class Exists(Constraint):
    """外键存在性。lookup 未提供时跳过（纯单元测试场景）。"""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type

    def check(self, name, value, ctx):
        entity_id = to_int(value)
        if ctx.lookup is None or entity_id is None:
            return None
        if not ctx.lookup.exists(self.entity_type, entity_id):
            return f"The selected {name} is invalid."
        return None

    def __str__(self):
        return f"exists:{self.entity_type}"


class After(Constraint):
    """严格晚于另一个字段；另一个字段为空或无法解析时不检查。"""

    parse = staticmethod(parse_datetime)

    def __init__(self, other: str):
        self.other = other

    def check(self, name, value, ctx):
        mine = self.parse(value)
        theirs = self.parse(ctx.value(self.other))
        if mine is None or theirs is None:
            return None
        if mine <= theirs:
            return f"The {name} must be a date after {self.other}."
        return None

    def __str__(self):
        return f"after:{self.other}"


class AfterDate(After):
    """按日比较，用于 from_date / to_date 这类纯日期字段。"""

    parse = staticmethod(parse_date)


class AfterOrEqualNow(Constraint):
    """不早于 now + offset（offset 为负表示允许的时钟误差）。"""

    def __init__(self, offset_seconds: int = 0):
        self.offset = timedelta(seconds=offset_seconds)

    def check(self, name, value, ctx):
        moment = parse_datetime(value)
        if moment is None:
            return None
        if moment < ctx.now + self.offset:
            return f"The {name} must be a date after or equal to now."
        return None

    def __str__(self):
        return f"after_or_equal:now{int(self.offset.total_seconds()):+d}s"


class FilePath(Constraint):
    """单个文件字段：必须是已存储的路径字符串，不能是原始上传对象。"""

    def __init__(self, extensions: Iterable[str]):
        self.extensions = tuple(extensions)

    def check(self, name, value, ctx):
        if not isinstance(value, str):
            return f"The {name} field must be a stored file path."
        if _extension(value) not in self.extensions:
            return f"The {name} must be a file of type: {', '.join(self.extensions)}."
        return None

    def __str__(self):
        return f"file|mimes:{','.join(self.extensions)}"


class FileList(Constraint):
    """
    文件列表：list / JSON 数组字符串 / 单个路径。
    非字符串条目不在这里报错，归一化时会被剔除。
    """

    def __init__(self, extensions: Iterable[str]):
        self.extensions = tuple(extensions)

    def check(self, name, value, ctx):
        items = decode_list(value)
        if items is None:
            return f"The {name} field must be a list of files."
        for item in items:
            if isinstance(item, str) and _extension(item) not in self.extensions:
                return f"The {name} must be files of type: {', '.join(self.extensions)}."
        return None

    def __str__(self):
        return f"array|file|mimes:{','.join(self.extensions)}"


class IntList(Constraint):
    def __init__(self, entity_type: Optional[str] = None):
        self.entity_type = entity_type

    def check(self, name, value, ctx):
        if isinstance(value, int) and not isinstance(value, bool):
            items = [value]
        else:
            items = decode_list(value)
        if items is None:
            return f"The {name} field must be a list of integers."

        ids = [to_int(item) for item in items]
        if any(entity_id is None for entity_id in ids):
            return f"The {name} field must contain only integers."

        if self.entity_type and ctx.lookup is not None:
            missing = [entity_id for entity_id in ids if not ctx.lookup.exists(self.entity_type, entity_id)]
            if missing:
                return f"The selected {name} is invalid: {', '.join(map(str, missing))}."
        return None

    def __str__(self):
        return "array|integer" + (f"|exists:{self.entity_type}" if self.entity_type else "")


class AreaPriced(Constraint):
    """挂在 area_id 上：所选区域必须为该实体配置了价格。"""

    def __init__(self, entity_type: str, entity_field: str):
        self.entity_type = entity_type
        self.entity_field = entity_field

    def check(self, name, value, ctx):
        area_id = to_int(value)
        entity_id = to_int(ctx.value(self.entity_field))
        if ctx.lookup is None or area_id is None or entity_id is None:
            return None
        if not ctx.lookup.has_area_price(self.entity_type, entity_id, area_id):
            return (
                f"The selected area does not have pricing configured for the requested "
                f"{self.entity_type}."
            )
        return None

    def __str__(self):
        return f"area_priced:{self.entity_type}"


# ── 组规则 ─────────────────────────────────────────────────────────────────

class ExactlyOneOf:
    """组内恰好一个字段有值；违反时组内每个字段都收到同一条错误。"""

    def __init__(self, *names: str):
        self.names = names

    def check(self, ctx: ValidationContext) -> ValidationErrorSet:
        message = exactly_one_error(ctx.payload, self.names)
        if message is None:
            return {}
        return {name: [message] for name in self.names}

    def __str__(self):
        return f"exactly_one_of:{','.join(self.names)}"


# ── 入口 ───────────────────────────────────────────────────────────────────

def validate_field(name: str, constraints: Iterable[Constraint], ctx: ValidationContext) -> list[str]:
    constraints = tuple(constraints)
    value = ctx.value(name)

    for constraint in constraints:
        if isinstance(constraint, Presence) and constraint.is_required(name, ctx) and is_blank(value):
            return [constraint.message(name)]

    if is_blank(value):
        return []

    for constraint in constraints:
        if isinstance(constraint, Presence):
            continue
        message = constraint.check(name, value, ctx)
        if message:
            return [message]
    return []


def validate_fields(
    spec: Mapping[str, Iterable[Constraint]],
    payload: Mapping[str, Any],
    groups: Iterable[ExactlyOneOf] = (),
    lookup: Optional[ReferenceLookup] = None,
    now: Optional[datetime] = None,
) -> ValidationErrorSet:
    ctx = ValidationContext(payload=payload, lookup=lookup, now=now or datetime.now(timezone.utc))
    errors: ValidationErrorSet = {}

    for name, constraints in spec.items():
        messages = validate_field(name, constraints, ctx)
        if messages:
            errors[name] = messages

    for group in groups:
        for name, messages in group.check(ctx).items():
            bucket = errors.setdefault(name, [])
            bucket.extend(message for message in messages if message not in bucket)

    return errors


def validate_payload(rule, payload, lookup=None, now=None) -> ValidationErrorSet:
    """按 CategoryRule 校验整份 payload，返回完整的 field → messages。"""
    return validate_fields(rule.validation_spec(), payload, rule.groups, lookup=lookup, now=now)
