"""
Result streams own their connection until drained or closed.
"""
import pytest
from sqlite_connector import InvalidCastError, OperationalError
from tests.fixtures.entities import Product, Wrong


@pytest.mark.sqlite
def test_stream_is_lazy_and_single_pass(sl_connector):
    rows = sl_connector.select(Product, 'SELECT * FROM Product ORDER BY Id')
    assert not rows.closed
    assert rows.column_names == ['Id', 'Name', 'Price', 'Sku', 'Created']

    first = next(rows)
    assert first.Name == 'Tea'
    assert not rows.closed

    rest = list(rows)
    assert [p.Name for p in rest] == ['Coffee', 'Cocoa']
    assert rows.closed
    assert list(rows) == []


@pytest.mark.sqlite
def test_stream_closed_by_context_manager(sl_connector):
    with sl_connector.select_values('SELECT Name FROM Product ORDER BY Id') as names:
        assert next(names) == 'Tea'
    assert names.closed
    with pytest.raises(StopIteration):
        next(names)


@pytest.mark.sqlite
def test_stream_close_releases_connection(sl_connector):
    """Closing a partly read stream lets a writer proceed"""
    rows = sl_connector.select_values('SELECT Id FROM Product')
    next(rows)
    rows.close()
    rows.close()
    assert rows.closed
    assert sl_connector.execute('DELETE FROM Product') == 3


@pytest.mark.sqlite
def test_stream_empty_result(sl_connector):
    rows = sl_connector.select(Product, 'SELECT * FROM Product WHERE Id IN (@ids)', {'ids': []})
    assert list(rows) == []
    assert rows.closed


@pytest.mark.sqlite
def test_stream_mapping_error_closes(sl_connector):
    rows = sl_connector.select(Wrong, 'SELECT Id, Name FROM Product ORDER BY Id')
    with pytest.raises(InvalidCastError) as exc_info:
        next(rows)
    assert exc_info.value.column == 'Name'
    assert rows.closed


@pytest.mark.sqlite
def test_stream_query_error_raised_on_call(sl_connector):
    """SQL errors surface from select itself, not from the first next()"""
    with pytest.raises(OperationalError, match='no such table'):
        sl_connector.select(Product, 'SELECT * FROM Missing')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
