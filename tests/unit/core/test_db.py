"""Unit tests for the store_operation decorator."""

import pytest
from django.db import IntegrityError, InterfaceError, OperationalError

from modules.core.db import store_operation
from modules.core.exceptions import TransientStoreFailure

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("error", [OperationalError, InterfaceError])
def test_connection_errors_become_transient(error):
    @store_operation
    def read():
        raise error("server closed the connection")

    with pytest.raises(TransientStoreFailure) as exc_info:
        read()
    assert isinstance(exc_info.value.__cause__, error)


def test_integrity_errors_pass_through():
    @store_operation
    def write():
        raise IntegrityError("duplicate key")

    with pytest.raises(IntegrityError):
        write()


def test_return_value_and_name_preserved():
    @store_operation
    def lookup(x):
        return x * 2

    assert lookup(21) == 42
    assert lookup.__name__ == "lookup"
