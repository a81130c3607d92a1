"""
Unit tests for the declarative validation engine.

覆盖：
1. Presence 约束（Required / RequiredWithout / RequiredWith / RequiredUnlessTrue）
2. 空值且非必填 → 跳过
3. 同一字段第一个失败就停，不同字段错误全部收集
4. 外键 / 区域价（StubLookup）
5. ExactlyOneOf 组规则合并进字段错误
"""
from datetime import datetime, timedelta, timezone

from homecare.intake.validation import (
    After,
    AfterDate,
    AfterOrEqualNow,
    AreaPriced,
    Between,
    Boolean,
    Date,
    ExactlyOneOf,
    Exists,
    FileList,
    FilePath,
    Integer,
    IntList,
    OneOf,
    Required,
    RequiredUnlessTrue,
    RequiredWith,
    RequiredWithout,
    String,
    validate_fields,
)
from tests.conftest import StubLookup

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def errors_for(spec, payload, **kwargs):
    kwargs.setdefault('now', NOW)
    return validate_fields(spec, payload, **kwargs)


class TestPresence:

    def test_required_missing(self):
        errors = errors_for({'service_id': (Required(), Integer())}, {})
        assert errors == {'service_id': ['The service_id field is required.']}

    def test_blank_string_counts_as_missing(self):
        errors = errors_for({'service_id': (Required(),)}, {'service_id': '  '})
        assert 'service_id' in errors

    def test_optional_blank_skips_other_constraints(self):
        assert errors_for({'area_id': (Integer(),)}, {'area_id': None}) == {}

    def test_required_without(self):
        spec = {'is_day_shift': (RequiredWithout('nurse_visit_id'), Boolean())}
        assert 'is_day_shift' in errors_for(spec, {})
        assert errors_for(spec, {'nurse_visit_id': 3}) == {}

    def test_required_with(self):
        spec = {'visits_per_day': (RequiredWith('nurse_visit_id'), Integer())}
        assert 'visits_per_day' in errors_for(spec, {'nurse_visit_id': 3})
        assert errors_for(spec, {}) == {}

    def test_required_unless_true_accepts_string_flag(self):
        spec = {'address_city': (RequiredUnlessTrue('use_saved_address'), String(255))}
        assert errors_for(spec, {'use_saved_address': 'true'}) == {}
        assert 'address_city' in errors_for(spec, {'use_saved_address': 'false'})


class TestCollection:

    def test_stops_at_first_failure_per_field(self):
        spec = {'sessions_per_month': (Integer(), Between(1, 10))}
        errors = errors_for(spec, {'sessions_per_month': 'many'})
        assert errors == {'sessions_per_month': ['The sessions_per_month field must be an integer.']}

    def test_collects_errors_for_every_field(self):
        spec = {
            'service_id': (Required(),),
            'nurse_gender': (OneOf(('male', 'female')),),
            'phone_number': (String(5),),
        }
        errors = errors_for(spec, {'nurse_gender': 'robot', 'phone_number': '0123456789'})
        assert set(errors) == {'service_id', 'nurse_gender', 'phone_number'}


class TestValueConstraints:

    def test_int_choices_accept_numeric_strings(self):
        spec = {'duration_hours': (OneOf((4, 6, 8, 12, 24)),)}
        assert errors_for(spec, {'duration_hours': '12'}) == {}
        assert 'duration_hours' in errors_for(spec, {'duration_hours': 5})

    def test_between_bounds(self):
        spec = {'visits_per_day': (Between(1, 4),)}
        assert errors_for(spec, {'visits_per_day': 4}) == {}
        assert 'visits_per_day' in errors_for(spec, {'visits_per_day': 5})
        assert 'visits_per_day' in errors_for(spec, {'visits_per_day': 0})

    def test_after_is_strict(self):
        spec = {'to_date': (After('from_date'),)}
        assert 'to_date' in errors_for(spec, {'from_date': '2026-11-01', 'to_date': '2026-11-01'})
        assert errors_for(spec, {'from_date': '2026-11-01', 'to_date': '2026-11-02'}) == {}

    def test_after_date_compares_calendar_days(self):
        spec = {'to_date': (Date(), AfterDate('from_date'))}
        assert 'to_date' in errors_for(spec, {'from_date': '2026-11-01', 'to_date': '2026-11-01T23:00'})
        assert errors_for(spec, {'from_date': '2026-11-01', 'to_date': '2026-11-02'}) == {}

    def test_date_rejects_datetime_text(self):
        spec = {'from_date': (Date(),)}
        assert errors_for(spec, {'from_date': '2026-11-01T09:00:00'}) == {
            'from_date': ['The from_date field is not a valid date.'],
        }
        assert 'from_date' in errors_for(spec, {'from_date': '2026-11-01garbage'})

    def test_between_rejects_non_finite_numbers(self):
        spec = {'discount_percentage': (Between(0, 100),)}
        for value in ('NaN', 'nan', 'Infinity', '-Infinity', 'sNaN'):
            assert errors_for(spec, {'discount_percentage': value}) == {
                'discount_percentage': ['The discount_percentage field must be a number.'],
            }

    def test_integer_rejects_unicode_digits(self):
        spec = {'service_id': (Integer(), Exists('service'))}
        lookup = StubLookup(known={'service': {2}})
        assert errors_for(spec, {'service_id': '²'}, lookup=lookup) == {
            'service_id': ['The service_id field must be an integer.'],
        }
        assert 'service_id' in errors_for(spec, {'service_id': '9' * 5000}, lookup=lookup)

    def test_after_skips_when_other_missing(self):
        assert errors_for({'to_date': (After('from_date'),)}, {'to_date': '2026-11-01'}) == {}

    def test_after_or_equal_now_grace(self):
        spec = {'scheduled_time': (AfterOrEqualNow(-30),)}
        ok = (NOW - timedelta(seconds=20)).isoformat()
        late = (NOW - timedelta(minutes=5)).isoformat()
        assert errors_for(spec, {'scheduled_time': ok}) == {}
        assert 'scheduled_time' in errors_for(spec, {'scheduled_time': late})

    def test_file_path_rejects_upload_objects(self):
        spec = {'attach_front_face': (FilePath(('jpg', 'png')),)}
        assert 'attach_front_face' in errors_for(spec, {'attach_front_face': object()})
        assert 'attach_front_face' in errors_for(spec, {'attach_front_face': 'face.gif'})
        assert errors_for(spec, {'attach_front_face': 'face.JPG'}) == {}

    def test_file_list_extensions(self):
        spec = {'request_details_files': (FileList(('pdf',)),)}
        assert errors_for(spec, {'request_details_files': '["a.pdf", "b.pdf"]'}) == {}
        assert 'request_details_files' in errors_for(spec, {'request_details_files': ['a.jpg']})
        assert 'request_details_files' in errors_for(spec, {'request_details_files': '["a.pdf",'})


class TestLookups:

    def test_exists(self):
        lookup = StubLookup(known={'service': {7}})
        spec = {'service_id': (Integer(), Exists('service'))}
        assert errors_for(spec, {'service_id': 7}, lookup=lookup) == {}
        assert errors_for(spec, {'service_id': 8}, lookup=lookup) == {
            'service_id': ['The selected service_id is invalid.'],
        }

    def test_exists_skipped_without_lookup(self):
        assert errors_for({'service_id': (Exists('service'),)}, {'service_id': 8}) == {}

    def test_int_list_reports_missing_ids(self):
        lookup = StubLookup(known={'physio_machine': {1}})
        spec = {'physio_machines': (IntList('physio_machine'),)}
        errors = errors_for(spec, {'physio_machines': '[1, 9]'}, lookup=lookup)
        assert errors == {'physio_machines': ['The selected physio_machines is invalid: 9.']}

    def test_area_priced(self):
        lookup = StubLookup(area_prices={('service', 7, 2)})
        spec = {'area_id': (AreaPriced('service', 'service_id'),)}
        assert errors_for(spec, {'service_id': 7, 'area_id': 2}, lookup=lookup) == {}
        assert 'area_id' in errors_for(spec, {'service_id': 7, 'area_id': 3}, lookup=lookup)


class TestGroups:

    def test_exactly_one_error_on_every_member(self):
        groups = (ExactlyOneOf('test_package_id', 'test_id'),)
        errors = errors_for({}, {'test_package_id': 1, 'test_id': 2}, groups=groups)
        assert set(errors) == {'test_package_id', 'test_id'}
        assert errors['test_package_id'] == errors['test_id']

    def test_group_errors_merge_with_field_errors(self):
        spec = {'test_id': (Integer(),)}
        groups = (ExactlyOneOf('test_package_id', 'test_id'),)
        errors = errors_for(spec, {'test_package_id': 1, 'test_id': 'x'}, groups=groups)
        assert len(errors['test_id']) == 2
