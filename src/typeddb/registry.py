"""
Keyed registry of connection wrappers.

The registry maps a caller-chosen key (the current thread by default) to one
ConnectionWrapper. It is unbounded and has no eviction: a wrapper stays
until it is closed through the registry or replaced by a lookup with
different options.
"""
import atexit
import logging
import threading
from typing import Any

from typeddb.connection import ConnectionWrapper
from typeddb.exceptions import ConfigurationError
from typeddb.options import DatabaseOptions

logger = logging.getLogger(__name__)

__all__ = ['ConnectionRegistry']


class ConnectionRegistry:
    """Thread-safe map of key to connected ConnectionWrapper.

    Every lookup-or-replace runs under one lock, so two threads asking for
    the same key never both open a connection for it.
    """

    _instance = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._connections: dict[Any, ConnectionWrapper] = {}
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'ConnectionRegistry':
        """Return the process-wide registry, closed at interpreter exit."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
                atexit.register(cls._instance.close_all_connections)
            return cls._instance

    @staticmethod
    def _resolve_key(key: Any) -> Any:
        return threading.current_thread() if key is None else key

    def get_connection(self, options: DatabaseOptions, key: Any = None) -> ConnectionWrapper:
        """Return a connected wrapper for `key` configured with `options`.

        An existing wrapper with equal options is reused, reconnecting it if
        needed. One with different options is closed and replaced.

        Args:
            options: Connection options
            key: Registry key, the current thread by default

        Returns
            Connected ConnectionWrapper
        """
        if options is None:
            raise ConfigurationError('Database options cannot be None')
        key = self._resolve_key(key)
        with self._lock:
            current = self._connections.get(key)
            if current is not None and current.options == options:
                if not current.is_connected():
                    logger.debug(f'Reconnecting {key!r}')
                    current.connect()
                return current

            if current is not None:
                logger.debug(f'Options changed for {key!r}, replacing connection')
                current.silent_close()
                del self._connections[key]

            wrapper = ConnectionWrapper(key, options)
            wrapper.connect()
            self._connections[key] = wrapper
            logger.debug(f'Registered connection {key!r} ({len(self._connections)} total)')
            return wrapper

    def close_connection(self, key: Any = None) -> None:
        """Close and forget the wrapper for `key`, the current thread by default.

        Raises
            ConnectionFailure: If closing fails. The wrapper is forgotten either way.
        """
        key = self._resolve_key(key)
        with self._lock:
            wrapper = self._connections.pop(key, None)
        if wrapper is not None:
            wrapper.close()

    def close_all_connections(self) -> None:
        """Close and forget every wrapper. Failures are logged.
        """
        with self._lock:
            wrappers = list(self._connections.values())
            self._connections.clear()
        for wrapper in wrappers:
            wrapper.silent_close()
        logger.debug(f'Closed {len(wrappers)} registered connections')

    def get_connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def __len__(self) -> int:
        return self.get_connection_count()

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._connections

    def __str__(self) -> str:
        with self._lock:
            lines = [f'{key!r}: {wrapper!r}' for key, wrapper in self._connections.items()]
        return '\n'.join(lines)
