"""
8 个 category 的具体规则：validation spec + map 函数。

新增 / 修改 category：在此文件改对应的 spec 和 map 函数，然后在 factory.py 注册即可。

已注册 category：
  1 — SERVICE_REQUEST   (service_id，地址必填除非 use_saved_address)
  2 — TESTS             (test_package_id / test_id 二选一 + 附件)
  3 — RAYS              (ray_id，只收 PDF)
  4 — MACHINES          (machine_id，租期 from_date / to_date)
  5 — PHYSIOTHERAPISTS  (physiotherapist_id + sessions_per_month + physio_machines)
  6 — OFFERS            (占位，业务规则尚未定义)
  7 — DUTIES            (nurse_visit_id / duty_id / babysitter_id 三选一)
  8 — DOCTORS           (doctor_id + slot_id + appointment_type)

map 函数只填自己 category 的字段，其他 category 的字段保持 None。
"""

from typing import Any, Mapping

from .normalizers import (
    build_full_name,
    is_blank,
    normalize_boolean,
    normalize_file_list,
    normalize_int_list,
    normalize_string,
    parse_date,
    parse_datetime,
    to_int,
)
from .types import (
    APPOINTMENT_TYPES,
    DURATION_HOURS,
    NURSE_GENDERS,
    TIME_TYPES,
    CanonicalRequest,
    CategoryRule,
    EntityType,
)
from .validation import (
    After,
    AfterDate,
    AfterOrEqualNow,
    AreaPriced,
    Between,
    Boolean,
    Date,
    DateTime,
    ExactlyOneOf,
    Exists,
    FileList,
    FilePath,
    Integer,
    IntList,
    Min,
    OneOf,
    Required,
    RequiredUnlessTrue,
    RequiredWhen,
    RequiredWith,
    RequiredWithout,
    String,
)

DETAIL_FILE_TYPES = ("pdf", "jpg", "jpeg", "png")
PDF_ONLY = ("pdf",)

# scheduled_time 允许比 now 早 30 秒（客户端时钟误差 + 网络延迟）
SCHEDULE_GRACE_SECONDS = 30


# ── 共用部分 ───────────────────────────────────────────────────────────────

def common_fields() -> dict[str, tuple]:
    return {
        "category_id": (Integer(),),
        "first_name": (String(255),),
        "last_name": (String(255),),
        "full_name": (String(255),),
        "phone_number": (String(20),),
        "problem_description": (String(),),
        "nurse_gender": (String(), OneOf(NURSE_GENDERS)),
        "name": (String(255),),
        "location": (String(),),
        "use_saved_address": (Boolean(),),
        "address_city": (String(255),),
        "address_street": (String(255),),
        "address_building": (String(255),),
        "address_additional_information": (String(),),
        "additional_information": (String(),),
        "notes": (String(),),
    }


def common_values(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "first_name": normalize_string(payload.get("first_name")),
        "last_name": normalize_string(payload.get("last_name")),
        "full_name": build_full_name(payload),
        "phone_number": normalize_string(payload.get("phone_number")),
        "problem_description": payload.get("problem_description") or None,
        "nurse_gender": normalize_string(payload.get("nurse_gender")),
        "name": normalize_string(payload.get("name")),
        "location": normalize_string(payload.get("location")),
        "use_saved_address": normalize_boolean(payload.get("use_saved_address", False)),
        "address_city": normalize_string(payload.get("address_city")),
        "address_street": normalize_string(payload.get("address_street")),
        "address_building": normalize_string(payload.get("address_building")),
        "address_additional_information": payload.get("address_additional_information") or None,
        "additional_information": payload.get("additional_information") or None,
        "notes": payload.get("notes") or None,
    }


def single_path(value: Any):
    """单文件字段：只接受字符串路径，残留的上传对象一律变成 None。"""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _build(category_id: int, payload: Mapping[str, Any], **specific) -> CanonicalRequest:
    return CanonicalRequest(category_id=category_id, **common_values(payload), **specific)


# ── 1. Service Request ─────────────────────────────────────────────────────
#
# {
#   "service_id": 7, "area_id": 2, "time_type": "part-time",
#   "scheduled_time": "2026-10-20T09:00:00Z", "ending_time": "2026-10-20T13:00:00Z",
#   "use_saved_address": false, "address_city": "Amman", "address_street": "Rainbow St"
# }

def service_request_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "service_id": (Required(), Integer(), Exists(EntityType.SERVICE)),
        "area_id": (Integer(), Exists(EntityType.AREA), AreaPriced(EntityType.SERVICE, "service_id")),
        "time_type": (String(), OneOf(TIME_TYPES)),
        "scheduled_time": (DateTime(), AfterOrEqualNow(-SCHEDULE_GRACE_SECONDS)),
        "ending_time": (DateTime(), After("scheduled_time")),
        "address_city": (RequiredUnlessTrue("use_saved_address"), String(255)),
        "address_street": (RequiredUnlessTrue("use_saved_address"), String(255)),
    }


def map_service_request(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        1, payload,
        service_id=to_int(payload.get("service_id")),
        area_id=to_int(payload.get("area_id")),
        time_type=normalize_string(payload.get("time_type")),
        scheduled_time=parse_datetime(payload.get("scheduled_time")),
        ending_time=parse_datetime(payload.get("ending_time")),
    )


# ── 2. Tests ───────────────────────────────────────────────────────────────
#
# {
#   "test_package_id": 3,                       // 或者 "test_id": 11，二选一
#   "request_details_files": ["requests/details/a.pdf"],
#   "request_with_insurance": "true",
#   "attach_front_face": "requests/insurance/front.jpg",
#   "attach_back_face":  "requests/insurance/back.jpg"
# }

def tests_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "test_package_id": (Integer(), Exists(EntityType.TEST_PACKAGE)),
        "test_id": (Integer(), Exists(EntityType.TEST)),
        "request_details_files": (FileList(DETAIL_FILE_TYPES),),
        "request_with_insurance": (Boolean(),),
        "attach_front_face": (FilePath(DETAIL_FILE_TYPES),),
        "attach_back_face": (FilePath(DETAIL_FILE_TYPES),),
    }


def map_tests(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        2, payload,
        test_package_id=to_int(payload.get("test_package_id")),
        test_id=to_int(payload.get("test_id")),
        request_details_files=normalize_file_list(payload.get("request_details_files")),
        request_with_insurance=normalize_boolean(payload.get("request_with_insurance", False)),
        attach_front_face=single_path(payload.get("attach_front_face")),
        attach_back_face=single_path(payload.get("attach_back_face")),
    )


# ── 3. Rays ────────────────────────────────────────────────────────────────
#
# { "ray_id": 4, "area_id": 2, "request_details_files": ["requests/details/referral.pdf"] }

def rays_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "ray_id": (Required(), Integer(), Exists(EntityType.RAY)),
        "area_id": (Integer(), Exists(EntityType.AREA)),
        "request_details_files": (FileList(PDF_ONLY),),
    }


def map_rays(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        3, payload,
        ray_id=to_int(payload.get("ray_id")),
        area_id=to_int(payload.get("area_id")),
        request_details_files=normalize_file_list(payload.get("request_details_files")),
    )


# ── 4. Machines ────────────────────────────────────────────────────────────
#
# { "machine_id": 5, "area_id": 2, "from_date": "2026-11-01", "to_date": "2026-11-30" }
#
# 租赁价格按区域定价（area_id），不走 service 价格。

def machines_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "machine_id": (Required(), Integer(), Exists(EntityType.MACHINE)),
        "area_id": (Integer(), Exists(EntityType.AREA)),
        "from_date": (Date(),),
        "to_date": (Date(), AfterDate("from_date")),
    }


def map_machines(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        4, payload,
        machine_id=to_int(payload.get("machine_id")),
        area_id=to_int(payload.get("area_id")),
        from_date=parse_date(payload.get("from_date")),
        to_date=parse_date(payload.get("to_date")),
    )


# ── 5. Physiotherapists ────────────────────────────────────────────────────
#
# {
#   "physiotherapist_id": 2, "sessions_per_month": 8,
#   "machines_included": "1", "physio_machines": "[1, 3]",   // JSON 字符串或数组
#   "request_details_files": "requests/details/report.pdf"  // 单个 PDF 也可以
# }

def physiotherapists_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "physiotherapist_id": (Required(), Integer(), Exists(EntityType.PHYSIOTHERAPIST)),
        "sessions_per_month": (Required(), Integer(), Min(1)),
        "area_id": (Integer(), Exists(EntityType.AREA)),
        "machines_included": (Boolean(),),
        "physio_machines": (IntList(EntityType.PHYSIO_MACHINE),),
        "from_date": (Date(),),
        "to_date": (Date(), AfterDate("from_date")),
        "request_details_files": (FileList(PDF_ONLY),),
    }


def map_physiotherapists(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        5, payload,
        physiotherapist_id=to_int(payload.get("physiotherapist_id")),
        sessions_per_month=to_int(payload.get("sessions_per_month")),
        area_id=to_int(payload.get("area_id")),
        machines_included=normalize_boolean(payload.get("machines_included", False)),
        physio_machines=normalize_int_list(payload.get("physio_machines")),
        from_date=parse_date(payload.get("from_date")),
        to_date=parse_date(payload.get("to_date")),
        request_details_files=normalize_file_list(payload.get("request_details_files")),
    )


# ── 6. Offers ──────────────────────────────────────────────────────────────
#
# 业务规则尚未定义：只有通用字段，不推断任何 offer 专属字段。

def offers_fields() -> dict[str, tuple]:
    return common_fields()


def map_offers(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(6, payload)


# ── 7. Duties ──────────────────────────────────────────────────────────────
#
# 三个子类型三选一：
#   nurse_visit_id — 按天上门，visits_per_day 1..4
#   duty_id        — 值班，duration_hours 或 is_continuous_care
#   babysitter_id  — 同 duty
# {
#   "duty_id": 2, "duration_hours": 12, "is_day_shift": "false",
#   "from_date": "2026-11-01", "to_date": "2026-11-07"
# }

def _needs_duration(payload: Mapping[str, Any]) -> bool:
    shift_based = not is_blank(payload.get("duty_id")) or not is_blank(payload.get("babysitter_id"))
    return shift_based and not normalize_boolean(payload.get("is_continuous_care"))


def _is_nurse_visit(payload: Mapping[str, Any]) -> bool:
    return not is_blank(payload.get("nurse_visit_id"))


def duties_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "nurse_visit_id": (Integer(), Exists(EntityType.NURSE_VISIT)),
        "duty_id": (Integer(), Exists(EntityType.DUTY)),
        "babysitter_id": (Integer(), Exists(EntityType.BABYSITTER)),
        "area_id": (Integer(), Exists(EntityType.AREA)),
        "visits_per_day": (RequiredWith("nurse_visit_id"), Integer(), Between(1, 4)),
        "duration_hours": (
            RequiredWhen(_needs_duration, "a duty or babysitter is requested without continuous care"),
            Integer(),
            OneOf(DURATION_HOURS),
        ),
        "is_continuous_care": (Boolean(),),
        "is_day_shift": (RequiredWithout("nurse_visit_id"), Boolean()),
        "from_date": (Required(), Date()),
        "to_date": (Required(), Date(), AfterDate("from_date")),
    }


def map_duties(payload: Mapping[str, Any]) -> CanonicalRequest:
    nurse_visit = _is_nurse_visit(payload)
    continuous = not nurse_visit and normalize_boolean(payload.get("is_continuous_care", False))

    return _build(
        7, payload,
        nurse_visit_id=to_int(payload.get("nurse_visit_id")),
        duty_id=to_int(payload.get("duty_id")),
        babysitter_id=to_int(payload.get("babysitter_id")),
        area_id=to_int(payload.get("area_id")),
        visits_per_day=to_int(payload.get("visits_per_day")) if nurse_visit else None,
        duration_hours=None if nurse_visit or continuous else to_int(payload.get("duration_hours")),
        is_continuous_care=continuous,
        is_day_shift=normalize_boolean(payload.get("is_day_shift", True)),
        from_date=parse_date(payload.get("from_date")),
        to_date=parse_date(payload.get("to_date")),
    )


# ── 8. Doctors ─────────────────────────────────────────────────────────────
#
# {
#   "doctor_id": 9, "slot_id": 31, "appointment_type": "video_call",
#   "request_details_files": "[\"requests/details/labs.pdf\"]"
# }

def doctors_fields() -> dict[str, tuple]:
    return {
        **common_fields(),
        "doctor_id": (Required(), Integer(), Exists(EntityType.DOCTOR)),
        "slot_id": (Required(), Integer(), Exists(EntityType.DOCTOR_SLOT)),
        "appointment_type": (Required(), String(), OneOf(APPOINTMENT_TYPES)),
        "area_id": (Integer(), Exists(EntityType.AREA)),
        "request_details_files": (FileList(DETAIL_FILE_TYPES),),
    }


def map_doctors(payload: Mapping[str, Any]) -> CanonicalRequest:
    return _build(
        8, payload,
        doctor_id=to_int(payload.get("doctor_id")),
        slot_id=to_int(payload.get("slot_id")),
        appointment_type=normalize_string(payload.get("appointment_type")),
        area_id=to_int(payload.get("area_id")),
        request_details_files=normalize_file_list(payload.get("request_details_files")),
    )


# ── 规则实例 ───────────────────────────────────────────────────────────────

SERVICE_REQUEST = CategoryRule(1, "service_request", service_request_fields(), map_service_request)
TESTS = CategoryRule(
    2, "tests", tests_fields(), map_tests,
    groups=(ExactlyOneOf("test_package_id", "test_id"),),
)
RAYS = CategoryRule(3, "rays", rays_fields(), map_rays)
MACHINES = CategoryRule(4, "machines", machines_fields(), map_machines)
PHYSIOTHERAPISTS = CategoryRule(5, "physiotherapists", physiotherapists_fields(), map_physiotherapists)
OFFERS = CategoryRule(6, "offers", offers_fields(), map_offers, is_stub=True)
DUTIES = CategoryRule(
    7, "duties", duties_fields(), map_duties,
    groups=(ExactlyOneOf("nurse_visit_id", "duty_id", "babysitter_id"),),
)
DOCTORS = CategoryRule(8, "doctors", doctors_fields(), map_doctors)
