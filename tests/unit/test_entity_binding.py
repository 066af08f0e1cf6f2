"""
Tests for binding tables and column value coercion.
"""
import datetime
import decimal
import uuid
from dataclasses import dataclass, field

import pytest
from sqlite_connector import Int32
from sqlite_connector.exceptions import InvalidCastError, TypeConversionError
from sqlite_connector.mapping import EntityBinding, coerce_value, get_binding
from sqlite_connector.mapping import map_entity, row_items
from tests.fixtures.entities import FrozenProduct, PlainProduct, Product
from tests.fixtures.entities import ProductSummary, Status, Tracked


class FakeRow:
    """Row lookalike exposing keys() and positional values, like sqlite3.Row."""

    def __init__(self, **values):
        self._values = values

    def keys(self):
        return list(self._values)

    def __iter__(self):
        return iter(self._values.values())


class TestCoerceValue:

    @pytest.mark.parametrize(('value', 'target', 'expected'), [
        (None, Int32, None),
        (7, Int32, 7),
        (2**31 - 1, Int32, 2**31 - 1),
        (5, decimal.Decimal, decimal.Decimal('5')),
        (1.25, decimal.Decimal, decimal.Decimal('1.25')),
        ('9.99', decimal.Decimal, decimal.Decimal('9.99')),
        ('12345678-1234-5678-1234-567812345678', uuid.UUID,
         uuid.UUID('12345678-1234-5678-1234-567812345678')),
        (uuid.UUID(int=1).bytes, uuid.UUID, uuid.UUID(int=1)),
        ('2024-01-02 03:04:05', datetime.datetime, datetime.datetime(2024, 1, 2, 3, 4, 5)),
        ('2024-01-02T03:04:05', datetime.datetime, datetime.datetime(2024, 1, 2, 3, 4, 5)),
        ('2024-01-02', datetime.date, datetime.date(2024, 1, 2)),
        ('03:04:05', datetime.time, datetime.time(3, 4, 5)),
        (1, bool, True),
        (0, bool, False),
        (3, float, 3.0),
        (1, Status, Status.ACTIVE),
        ('text', str, 'text'),
        (b'\x01', bytes, b'\x01'),
        ('anything', None, 'anything'),
    ])
    def test_supported(self, value, target, expected):
        result = coerce_value(value, target)
        assert result == expected
        if expected is not None:
            assert type(result) is type(expected)

    @pytest.mark.parametrize(('value', 'target'), [
        (2**31, Int32),
        (-2**31 - 1, Int32),
        ('7', Int32),
        (1.5, Int32),
        ('not a number', decimal.Decimal),
        ('not-a-guid', uuid.UUID),
        (12, uuid.UUID),
        ('yesterday-ish', datetime.datetime),
        (5, datetime.date),
        ('true', bool),
        ('1.5', float),
        (99, Status),
        ('text', int),
        (5, str),
    ])
    def test_unsupported(self, value, target):
        with pytest.raises(InvalidCastError):
            coerce_value(value, target, 'Col')

    def test_error_carries_column_and_target(self):
        with pytest.raises(InvalidCastError) as exc_info:
            coerce_value('abc', int, 'Id')
        assert exc_info.value.column == 'Id'
        assert exc_info.value.target is int
        assert 'Id' in str(exc_info.value)

    def test_error_hierarchy(self):
        """Cast errors are catchable as TypeError and as connector errors."""
        with pytest.raises(TypeError):
            coerce_value('abc', int)
        with pytest.raises(TypeConversionError):
            coerce_value('abc', int)


class TestEntityBinding:

    def test_dataclass_fields(self):
        binding = EntityBinding.build(Product)
        assert [fb.column for fb in binding.fields] == ['Id', 'Name', 'Price', 'Sku', 'Created']
        assert binding.by_column['Id'].target is Int32
        assert binding.by_column['Price'].target is decimal.Decimal
        assert binding.by_column['Price'].nullable is True
        assert binding.by_column['Id'].required is True

    def test_column_metadata(self):
        binding = EntityBinding.build(ProductSummary)
        assert binding.by_column['Id'].attribute == 'product_id'
        assert binding.by_column['Name'].attribute == 'title'

    def test_plain_class_skips_private(self):
        binding = EntityBinding.build(PlainProduct)
        assert set(binding.by_column) == {'Id', 'Name'}

    def test_duplicate_column(self):
        @dataclass
        class Twice:
            a: int = field(metadata={'column': 'x'})
            b: int = field(metadata={'column': 'x'})

        with pytest.raises(ValueError, match='bound to both'):
            EntityBinding.build(Twice)

    def test_not_a_class(self):
        with pytest.raises(TypeError):
            EntityBinding.build(Product(1, 'x'))

    def test_no_fields(self):
        class Empty:
            pass

        with pytest.raises(TypeError, match='no annotated attributes'):
            EntityBinding.build(Empty)

    def test_cached_per_type(self):
        assert get_binding(Product) is get_binding(Product)
        assert EntityBinding.for_type(Product) is get_binding(Product)
        assert get_binding(Product) is not get_binding(Tracked)

    def test_create_coerces_columns(self):
        row = FakeRow(Id=1, Name='Tea', Price=3.5, Sku='12345678-1234-5678-1234-567812345678',
                      Created='2024-01-02 03:04:05')
        product = map_entity(Product, row)
        assert product == Product(
            1, 'Tea', decimal.Decimal('3.5'), uuid.UUID('12345678-1234-5678-1234-567812345678'),
            datetime.datetime(2024, 1, 2, 3, 4, 5))

    def test_create_ignores_unknown_columns(self):
        product = map_entity(Product, {'Id': 2, 'Name': 'Coffee', 'Extra': 'ignored'})
        assert product == Product(2, 'Coffee')

    def test_missing_required_column_is_none(self):
        product = map_entity(Product, {'Name': 'Cocoa'})
        assert product.Id is None
        assert product.Name == 'Cocoa'

    def test_columns_are_case_sensitive(self):
        product = map_entity(Product, {'id': 4, 'Name': 'Mate'})
        assert product.Id is None

    def test_renamed_columns_keep_defaults(self):
        summary = map_entity(ProductSummary, {'Id': 3, 'Name': 'Cocoa'})
        assert summary == ProductSummary(3, 'Cocoa', 'n/a')

    def test_frozen_dataclass(self):
        assert map_entity(FrozenProduct, {'Id': 1, 'Name': 'Tea'}) == FrozenProduct(1, 'Tea')

    def test_plain_class(self):
        product = map_entity(PlainProduct, {'Id': 5})
        assert product.Id == 5
        assert product.Name == 'unset'

    def test_mixed_targets(self):
        tracked = map_entity(Tracked, {'Id': 1, 'State': 2, 'Active': 1, 'Ratio': 2,
                                       'Born': '2000-02-29', 'Alarm': '06:30:00'})
        assert tracked == Tracked(1, Status.RETIRED, True, 2.0, datetime.date(2000, 2, 29),
                                  datetime.time(6, 30))

    def test_bad_value_names_column(self):
        with pytest.raises(InvalidCastError) as exc_info:
            map_entity(Product, {'Id': 2**40, 'Name': 'Huge'})
        assert exc_info.value.column == 'Id'


def test_row_items():
    assert row_items({'a': 1, 'b': 2}) == [('a', 1), ('b', 2)]
    assert row_items(FakeRow(a=1, b=2)) == [('a', 1), ('b', 2)]


if __name__ == '__main__':
    __import__('pytest').main([__file__])
