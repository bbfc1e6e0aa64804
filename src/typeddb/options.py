import logging
from dataclasses import dataclass

from typeddb.strategy import get_available_dialects, get_strategy_class
from typeddb.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

logger = logging.getLogger(__name__)

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`

    - url: full SQLAlchemy URL, used instead of the individual parts when set
    - timeout: login timeout in seconds for each connect (0 uses the driver default)
    - fetch_size: rows fetched per round trip by result cursors (None uses the driver default)

    Two options objects are equal when all their fields are equal.
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    url: str = None
    timeout: int = 0
    fetch_size: int = None
    appname: str = None

    def __post_init__(self):
        self.appname = self.appname or scriptname() or 'python_console'

    def check_required_parameters(self) -> bool:
        """Check that these options are complete enough to connect.

        Returns
            True if the driver is supported, numeric settings are in range and
            either `url` or every option the dialect requires is set
        """
        if not is_supported_dialect(self.drivername):
            logger.debug(f'drivername {self.drivername!r} must be one of: {get_available_dialects()}')
            return False
        if self.timeout is None or self.timeout < 0:
            logger.debug(f'timeout must be a non-negative number of seconds, got {self.timeout!r}')
            return False
        if self.fetch_size is not None and self.fetch_size <= 0:
            logger.debug(f'fetch_size must be positive, got {self.fetch_size!r}')
            return False
        if self.url:
            return True
        missing = [field for field in get_strategy_class(self.drivername).get_required_options()
                   if not getattr(self, field)]
        if missing:
            logger.debug(f'Missing required options for {self.drivername}: {missing}')
            return False
        return True
