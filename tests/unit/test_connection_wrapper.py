"""
Unit tests for ConnectionWrapper state handling, using a mock engine.
"""
import logging
import time

import pytest
from sqlalchemy.exc import ArgumentError
from sqlalchemy.pool import NullPool
from typeddb.connection import ConnectionWrapper, connect
from typeddb.cursor import DbapiResultCursor
from typeddb.exceptions import AutoCommitError, CommitError, ConfigurationError
from typeddb.exceptions import ConnectionFailure, ConnectionStateError
from typeddb.exceptions import DriverNotFoundError, MissingParameterError
from typeddb.exceptions import QueryError, RollbackError, TransactionError
from typeddb.exceptions import ValidationError
from typeddb.options import DatabaseOptions
from typeddb.strategy import SQLiteStrategy

from tests.fixtures.mocks import _create_mock_engine


@pytest.fixture
def postgres_options():
    return DatabaseOptions(drivername='postgresql', hostname='dbhost', username='app',
                           password='secret', database='appdb', appname='tests')


@pytest.fixture
def connected(mock_engine, sqlite_options):
    cn = ConnectionWrapper('test', sqlite_options).connect()
    yield cn
    cn.silent_close()


def test_unconfigured_wrapper():
    cn = ConnectionWrapper('test')
    assert not cn.is_connected()
    assert cn.dialect is None
    assert repr(cn) == "ConnectionWrapper(key='test', drivername=None, connected=False)"
    with pytest.raises(ConfigurationError):
        cn.connect()


def test_invalid_options_leave_wrapper_unchanged(sqlite_options):
    cn = ConnectionWrapper('test', sqlite_options)
    with pytest.raises(ConfigurationError):
        cn.set_options(DatabaseOptions(drivername='sqlite'))
    with pytest.raises(ConfigurationError):
        cn.set_options(None)
    assert cn.options is sqlite_options
    assert cn.dialect == 'sqlite'


@pytest.mark.parametrize('operation', [
    lambda cn: cn.commit(),
    lambda cn: cn.rollback(),
    lambda cn: cn.set_auto_commit(True),
    lambda cn: cn.get_auto_commit(),
    lambda cn: cn.get_metadata(),
    lambda cn: cn.create_cursor(),
    lambda cn: cn.execute_update('delete from t'),
    lambda cn: cn.execute_query('select 1'),
    lambda cn: cn.execute_named_update('delete from t where id = :id', {'id': 1}),
    lambda cn: cn.select_typed('select 1'),
])
def test_operations_require_connection(sqlite_options, operation):
    """Configured but disconnected wrappers reject statements and transaction control"""
    cn = ConnectionWrapper('test', sqlite_options)
    with pytest.raises(ConnectionStateError):
        operation(cn)


def test_connect_and_close(mock_engine, sqlite_options):
    cn = ConnectionWrapper('test', sqlite_options)
    assert cn.connect() is cn
    assert cn.is_connected()

    args, kwargs = mock_engine.create_engine.call_args
    assert args[0].drivername == 'sqlite'
    assert args[0].database == sqlite_options.database
    assert kwargs['poolclass'] is NullPool
    assert 'detect_types' in kwargs['connect_args']

    # auto-commit is off once connected
    assert mock_engine.driver_connection.isolation_level == 'DEFERRED'
    mock_engine.driver_connection.execute.assert_called_once_with('PRAGMA foreign_keys = ON')

    cn.close()
    assert not cn.is_connected()
    mock_engine.sa_connection.close.assert_called_once()
    mock_engine.dispose.assert_called_once()

    cn.close()
    mock_engine.sa_connection.close.assert_called_once()


def test_connect_twice(connected):
    with pytest.raises(ConnectionStateError):
        connected.connect()
    assert connected.is_connected()


def test_connect_with_options(mock_engine, sqlite_options):
    cn = ConnectionWrapper('test').connect(sqlite_options)
    assert cn.options is sqlite_options
    assert cn.is_connected()


def test_driver_not_found(mock_engine, sqlite_options, mocker):
    mocker.patch.object(SQLiteStrategy, 'driver_module', 'no_such_sqlite_driver')
    cn = ConnectionWrapper('test', sqlite_options)
    with pytest.raises(DriverNotFoundError) as exc_info:
        cn.connect()
    assert isinstance(exc_info.value, ConfigurationError)
    assert isinstance(exc_info.value.__cause__, ImportError)
    mock_engine.create_engine.assert_not_called()


def test_engine_creation_failure(mock_engine, sqlite_options):
    mock_engine.create_engine.side_effect = ArgumentError('bad url')
    with pytest.raises(ConfigurationError):
        ConnectionWrapper('test', sqlite_options).connect()


def test_connect_failure_hides_password(mock_engine, postgres_options):
    mock_engine.connect.side_effect = OSError('connection refused')
    cn = ConnectionWrapper('test', postgres_options)
    with pytest.raises(ConnectionFailure) as exc_info:
        cn.connect()
    assert 'secret' not in str(exc_info.value)
    assert 'dbhost' in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, OSError)
    mock_engine.dispose.assert_called_once()
    assert not cn.is_connected()


def test_postgres_engine_arguments(mock_engine, postgres_options):
    postgres_options.timeout = 7
    ConnectionWrapper('test', postgres_options).connect()
    args, kwargs = mock_engine.create_engine.call_args
    assert args[0].drivername == 'postgresql+psycopg'
    assert args[0].host == 'dbhost'
    assert kwargs['connect_args'] == {'application_name': 'tests', 'connect_timeout': 7}
    assert mock_engine.driver_connection.autocommit is False


def test_configure_failure_releases_connection(mock_engine, sqlite_options):
    mock_engine.driver_connection.execute.side_effect = RuntimeError('disk I/O error')
    cn = ConnectionWrapper('test', sqlite_options)
    with pytest.raises(ConnectionFailure):
        cn.connect()
    mock_engine.sa_connection.close.assert_called_once()
    mock_engine.dispose.assert_called_once()
    assert not cn.is_connected()


def test_set_options_while_connected_closes(connected, mock_engine, tmp_path):
    other = DatabaseOptions(drivername='sqlite', database=str(tmp_path / 'other.db'))
    connected.set_options(other)
    assert not connected.is_connected()
    assert connected.options is other
    mock_engine.sa_connection.close.assert_called_once()


def test_invalidated_connection_is_not_connected(connected, mock_engine):
    mock_engine.sa_connection.invalidated = True
    assert not connected.is_connected()


def test_reconnect_releases_stale_connection(connected, mock_engine):
    """Test a dropped connection is released before a new one is opened"""
    mock_engine.driver_connection.closed = True
    assert not connected.is_connected()

    fresh = _create_mock_engine()
    mock_engine.create_engine.return_value = fresh
    connected.connect()
    mock_engine.sa_connection.close.assert_called_once()
    mock_engine.dispose.assert_called_once()
    assert connected.is_connected()
    assert connected.driver_connection is fresh.driver_connection


class TestValidity:

    def test_round_trip(self, connected, mock_engine):
        assert connected.is_valid()
        assert connected.is_valid(5)
        mock_engine.driver_connection.cursor.return_value.execute.assert_called_with('select 1')

    def test_disconnected(self, sqlite_options):
        assert not ConnectionWrapper('test', sqlite_options).is_valid()

    def test_negative_timeout(self, connected):
        with pytest.raises(ValidationError):
            connected.is_valid(-1)

    def test_failed_round_trip(self, connected, mock_engine):
        mock_engine.driver_connection.cursor.side_effect = RuntimeError('server closed the connection')
        assert not connected.is_valid()

    def test_slow_round_trip(self, connected, mocker):
        mocker.patch.object(connected.strategy, 'ping', side_effect=lambda conn: time.sleep(0.05))
        assert not connected.is_valid(0.01)
        assert connected.is_valid(0)


class TestTransactions:

    def test_commit_and_rollback(self, connected, mock_engine):
        connected.commit()
        connected.rollback()
        mock_engine.driver_connection.commit.assert_called_once()
        mock_engine.driver_connection.rollback.assert_called_once()

    def test_commit_failure(self, connected, mock_engine):
        mock_engine.driver_connection.commit.side_effect = RuntimeError('deadlock detected')
        with pytest.raises(CommitError) as exc_info:
            connected.commit()
        assert isinstance(exc_info.value, TransactionError)

    def test_rollback_failure(self, connected, mock_engine):
        mock_engine.driver_connection.rollback.side_effect = RuntimeError('connection lost')
        with pytest.raises(RollbackError):
            connected.rollback()

    def test_auto_commit(self, connected, mock_engine):
        assert connected.get_auto_commit() is False
        connected.set_auto_commit(True)
        assert mock_engine.driver_connection.isolation_level is None
        assert connected.get_auto_commit() is True
        connected.set_auto_commit(False)
        assert connected.get_auto_commit() is False

    def test_auto_commit_failure(self, connected, mocker):
        mocker.patch.object(connected.strategy, 'get_autocommit', side_effect=RuntimeError('closed'))
        mocker.patch.object(connected.strategy, 'enable_autocommit', side_effect=RuntimeError('closed'))
        with pytest.raises(AutoCommitError):
            connected.get_auto_commit()
        with pytest.raises(AutoCommitError):
            connected.set_auto_commit(True)


class TestExecution:

    def test_update_binds_parameters(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        cursor.rowcount = 2
        assert connected.execute_update('update t set a = ? where b = ?', 1, 'x') == 2
        cursor.execute.assert_called_once_with('update t set a = ? where b = ?', (1, 'x'))
        cursor.close.assert_called_once()
        assert connected.calls == 1

    def test_update_without_parameters(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        connected.execute_update("update t set a = 'x%'")
        cursor.execute.assert_called_once_with("update t set a = 'x%'")

    def test_postgres_placeholders(self, mock_engine, postgres_options):
        cn = ConnectionWrapper('test', postgres_options).connect()
        cursor = mock_engine.driver_connection.cursor.return_value
        cn.execute_update("update t set a = ? where b like 'x%'", 1)
        cursor.execute.assert_called_once_with("update t set a = %s where b like 'x%%'", (1,))

    def test_update_failure(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        cursor.execute.side_effect = RuntimeError('syntax error')
        with pytest.raises(QueryError, match='syntax error'):
            connected.execute_update('updte t')
        cursor.close.assert_called_once()

    def test_bind_failure_closes_cursor(self, connected, mock_engine):

        class Unbindable(int):
            def __int__(self):
                raise ValueError('no')

        cursor = mock_engine.driver_connection.cursor.return_value
        with pytest.raises(QueryError, match='position 2'):
            connected.execute_update('update t set a = ?, b = ?', 1, Unbindable())
        cursor.execute.assert_not_called()
        cursor.close.assert_called_once()

    def test_cursor_close_failure_is_logged(self, connected, mock_engine, caplog):
        cursor = mock_engine.driver_connection.cursor.return_value
        cursor.close.side_effect = RuntimeError('already closed')
        with caplog.at_level(logging.WARNING):
            connected.execute_update('delete from t')
        assert 'Error closing cursor' in caplog.text

    def test_query_returns_owned_cursor(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        result = connected.execute_query('select * from t where id = ?', 3)
        assert isinstance(result, DbapiResultCursor)
        assert result.dbapi_cursor is cursor
        cursor.close.assert_not_called()
        result.close()
        cursor.close.assert_called_once()

    def test_query_failure_closes_cursor(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        cursor.execute.side_effect = RuntimeError('no such table')
        with pytest.raises(QueryError):
            connected.execute_query('select * from missing')
        cursor.close.assert_called_once()

    def test_fetch_size(self, mock_engine, tmp_path):
        options = DatabaseOptions(drivername='sqlite', database=str(tmp_path / 'f.db'), fetch_size=50)
        cn = ConnectionWrapper('test', options).connect()
        assert cn.create_cursor().arraysize == 50

    def test_fetch_size_per_query(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        with connected.execute_query('select * from t where a = ?', 1, fetch_size=500):
            assert cursor.arraysize == 500
        with connected.execute_named_query('select * from t where a = :a', {'a': 1}, fetch_size=25):
            assert cursor.arraysize == 25

    def test_cursor_creation_failure(self, connected, mock_engine):
        mock_engine.driver_connection.cursor.side_effect = RuntimeError('closed')
        with pytest.raises(QueryError):
            connected.create_cursor()

    def test_named_update(self, connected, mock_engine):
        cursor = mock_engine.driver_connection.cursor.return_value
        connected.execute_named_update('update t set a = :a where id = :id and b = :a', {'a': 1, 'id': 2})
        cursor.execute.assert_called_once_with('update t set a = ? where id = ? and b = ?', (1, 2, 1))

    def test_named_missing_value(self, connected, mock_engine):
        """A missing name fails before any statement is created"""
        with pytest.raises(MissingParameterError):
            connected.execute_named_query('select * from t where id = :id', {})
        mock_engine.driver_connection.cursor.assert_not_called()


class TestClose:

    def test_context_manager(self, mock_engine, sqlite_options):
        with ConnectionWrapper('test', sqlite_options).connect() as cn:
            assert cn.is_connected()
        assert not cn.is_connected()

    def test_close_failure(self, connected, mock_engine):
        """A failed close still drops the handle"""
        mock_engine.sa_connection.close.side_effect = RuntimeError('broken pipe')
        with pytest.raises(ConnectionFailure):
            connected.close()
        assert connected.sa_connection is None
        assert not connected.is_connected()

    def test_silent_close_failure(self, connected, mock_engine, caplog):
        mock_engine.sa_connection.close.side_effect = RuntimeError('broken pipe')
        with caplog.at_level(logging.WARNING):
            connected.silent_close()
        assert 'Error closing connection' in caplog.text
        assert not connected.is_connected()


def test_get_metadata(connected):
    info = connected.get_metadata()
    assert info.dialect == 'sqlite'
    assert info.server_version == '3.45.1'
    assert info.driver == 'pysqlite'


def test_custom_logger(mock_engine, sqlite_options, caplog):
    log = logging.getLogger('tests.wrapper')
    cn = ConnectionWrapper('test', sqlite_options, logger=log).connect()
    mock_engine.sa_connection.close.side_effect = RuntimeError('broken pipe')
    with caplog.at_level(logging.WARNING, logger='tests.wrapper'):
        cn.silent_close()
    assert caplog.records[-1].name == 'tests.wrapper'


def test_connect_function(mock_engine, tmp_path):
    cn = connect({'drivername': 'sqlite', 'database': str(tmp_path / 'f.db')})
    assert isinstance(cn, ConnectionWrapper)
    assert cn.is_connected()
    assert cn.dialect == 'sqlite'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
