"""
Unit tests for the category registry.
"""
import pytest

from homecare.exceptions import UnsupportedCategoryError, ValidationError
from homecare.intake.factory import known_categories, resolve


class TestResolve:

    @pytest.mark.parametrize('category_id', range(1, 9))
    def test_known_categories(self, category_id):
        assert resolve(category_id).category_id == category_id

    def test_numeric_string_accepted(self):
        assert resolve('2').name == 'tests'

    @pytest.mark.parametrize('category_id', [9, 0, -1, 'abc', None, True, 2.5, '²', '٢', '1' * 5000])
    def test_unsupported_category_raises(self, category_id):
        with pytest.raises(UnsupportedCategoryError) as exc_info:
            resolve(category_id)

        assert exc_info.value.code == 'UNSUPPORTED_CATEGORY'
        assert exc_info.value.http_status == 400
        assert exc_info.value.detail == {'known_categories': [1, 2, 3, 4, 5, 6, 7, 8]}

    def test_unsupported_category_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            resolve(9)

    def test_known_categories_list(self):
        assert known_categories() == [1, 2, 3, 4, 5, 6, 7, 8]

    def test_rules_are_shared_instances(self):
        assert resolve(1) is resolve(1)
