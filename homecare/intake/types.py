"""
CanonicalRequest dataclass — 业务逻辑唯一认识的标准请求格式。

8 个 category 的 map_fn 都必须返回这个结构。
下游（pricing / persistence / notification）只消费这个结构，永远不碰原始 payload。
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Protocol


# ── 词汇表 ─────────────────────────────────────────────────────────────────

class RequestStatus:
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (SUBMITTED, ASSIGNED, IN_PROGRESS, COMPLETED, CANCELLED)
    TERMINAL = (COMPLETED, CANCELLED)


class EntityType:
    """referential lookup 使用的实体类型标识（与 CatalogItem.entity_type 一致）。"""

    SERVICE = "service"
    AREA = "area"
    TEST_PACKAGE = "test_package"
    TEST = "test"
    RAY = "ray"
    MACHINE = "machine"
    PHYSIOTHERAPIST = "physiotherapist"
    PHYSIO_MACHINE = "physio_machine"
    NURSE_VISIT = "nurse_visit"
    DUTY = "duty"
    BABYSITTER = "babysitter"
    DOCTOR = "doctor"
    DOCTOR_SLOT = "doctor_slot"
    NURSE = "nurse"

    ALL = (
        SERVICE, AREA, TEST_PACKAGE, TEST, RAY, MACHINE, PHYSIOTHERAPIST,
        PHYSIO_MACHINE, NURSE_VISIT, DUTY, BABYSITTER, DOCTOR, DOCTOR_SLOT, NURSE,
    )


NURSE_GENDERS = ("male", "female", "any", "none")
TIME_TYPES = ("full-time", "part-time")
APPOINTMENT_TYPES = ("check_at_home", "check_at_clinic", "video_call")
DURATION_HOURS = (4, 6, 8, 12, 24)

# field → [messages]，直接作为 422 响应的 detail.errors
ValidationErrorSet = dict[str, list[str]]


class ReferenceLookup(Protocol):
    """外键存在性校验的协作者接口。实现见 homecare/lookups.py。"""

    def exists(self, entity_type: str, entity_id: int) -> bool: ...

    def has_area_price(self, entity_type: str, entity_id: int, area_id: int) -> bool: ...


# ── 标准请求 ───────────────────────────────────────────────────────────────

# 每个 category 自己拥有的字段；其它 category 的字段在 map 之后必须为 None。
CATEGORY_FIELDS: dict[int, tuple[str, ...]] = {
    1: ("service_id", "area_id", "time_type", "scheduled_time", "ending_time"),
    2: ("test_package_id", "test_id", "request_details_files", "request_with_insurance",
        "attach_front_face", "attach_back_face"),
    3: ("ray_id", "area_id", "request_details_files"),
    4: ("machine_id", "area_id", "from_date", "to_date"),
    5: ("physiotherapist_id", "area_id", "sessions_per_month", "machines_included",
        "physio_machines", "from_date", "to_date", "request_details_files"),
    6: (),
    7: ("nurse_visit_id", "duty_id", "babysitter_id", "area_id", "visits_per_day",
        "duration_hours", "is_continuous_care", "is_day_shift", "from_date", "to_date"),
    8: ("doctor_id", "slot_id", "appointment_type", "area_id", "request_details_files"),
}

CATEGORY_SPECIFIC_FIELDS: tuple[str, ...] = tuple(
    sorted({name for names in CATEGORY_FIELDS.values() for name in names})
)


@dataclass
class CanonicalRequest:
    """
    标准内部请求格式。

    user_id / status / category_id 由 pipeline 注入，map_fn 不负责。
    total_price / discounted_price 由 pricing 协作者填写。
    """

    user_id: Optional[int] = None
    category_id: Optional[int] = None
    status: str = RequestStatus.SUBMITTED

    # 通用字段
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    problem_description: Optional[str] = None
    nurse_gender: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    use_saved_address: bool = False
    address_city: Optional[str] = None
    address_street: Optional[str] = None
    address_building: Optional[str] = None
    address_additional_information: Optional[str] = None
    additional_information: Optional[str] = None
    notes: Optional[str] = None

    # Category 1
    service_id: Optional[int] = None
    area_id: Optional[int] = None
    time_type: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    ending_time: Optional[datetime] = None

    # Category 2
    test_package_id: Optional[int] = None
    test_id: Optional[int] = None
    request_details_files: Optional[list[str]] = None
    request_with_insurance: Optional[bool] = None
    attach_front_face: Optional[str] = None
    attach_back_face: Optional[str] = None

    # Category 3 / 4
    ray_id: Optional[int] = None
    machine_id: Optional[int] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    # Category 5
    physiotherapist_id: Optional[int] = None
    sessions_per_month: Optional[int] = None
    machines_included: Optional[bool] = None
    physio_machines: Optional[list[int]] = None

    # Category 7
    nurse_visit_id: Optional[int] = None
    duty_id: Optional[int] = None
    babysitter_id: Optional[int] = None
    visits_per_day: Optional[int] = None
    duration_hours: Optional[int] = None
    is_continuous_care: Optional[bool] = None
    is_day_shift: Optional[bool] = None

    # Category 8
    doctor_id: Optional[int] = None
    slot_id: Optional[int] = None
    appointment_type: Optional[str] = None

    # admin / pricing
    total_price: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    discounted_price: Optional[Decimal] = None
    nurse_id: Optional[int] = None

    def as_model_fields(self) -> dict[str, Any]:
        """拍平成 ServiceRequest.objects.create(**fields) 可用的 dict。"""
        return asdict(self)

    def foreign_fields(self) -> dict[str, Any]:
        """不属于本 category 的专属字段 → 值。正常情况下全部为 None。"""
        owned = set(CATEGORY_FIELDS.get(self.category_id, ()))
        return {
            name: getattr(self, name)
            for name in CATEGORY_SPECIFIC_FIELDS
            if name not in owned
        }


# ── CategoryRule ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CategoryRule:
    """
    一个 category 的声明式规则：校验 spec + 映射函数。

    无状态、不可变；registry 里每个 category 一个实例。
    fields 是有序 mapping（field → constraint tuple），groups 是跨字段的组规则。
    """

    category_id: int
    name: str
    fields: Mapping[str, tuple] = field(repr=False)
    map_fn: Callable[[Mapping[str, Any]], CanonicalRequest] = field(repr=False)
    groups: tuple = ()
    is_stub: bool = False

    def validation_spec(self) -> Mapping[str, tuple]:
        return self.fields

    def map_to_canonical(self, payload: Mapping[str, Any]) -> CanonicalRequest:
        return self.map_fn(payload)

    def describe(self) -> dict[str, Any]:
        """对外展示用：field → 规则字符串列表。"""
        return {
            "category_id": self.category_id,
            "name": self.name,
            "is_stub": self.is_stub,
            "fields": {
                name: [str(constraint) for constraint in constraints]
                for name, constraints in self.fields.items()
            },
            "groups": [str(group) for group in self.groups],
        }


@dataclass
class IntakeResult:
    """pipeline 的返回值：要么有 record，要么有 errors，不会同时有。"""

    rule: CategoryRule
    record: Optional[CanonicalRequest] = None
    errors: ValidationErrorSet = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors
