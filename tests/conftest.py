import pathlib
import site

import pytest
from typeddb.resolver import TypeResolver

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear the shared type hint cache before and after each test."""
    TypeResolver.get_instance().clear_cache()
    yield
    TypeResolver.get_instance().clear_cache()


pytest_plugins = [
    'tests.fixtures.cursors',
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
