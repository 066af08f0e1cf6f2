import pathlib
import site

import pytest
from sqlite_connector.connection import dispose_all_engines
from sqlite_connector.mapping import clear_binding_cache

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear binding tables and engines before and after each test to ensure test isolation."""
    clear_binding_cache()
    yield
    clear_binding_cache()
    dispose_all_engines()


pytest_plugins = [
    'tests.fixtures.values',
    'tests.fixtures.sqlite',
]
