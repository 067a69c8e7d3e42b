"""
StoreConfig - explicit configuration passed at store construction.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from psycopg.conninfo import make_conninfo

from sqlkv.models.exceptions import ConfigurationError
from sqlkv.models.value import ColumnType

POSTGRES = "postgres"
SQLITE = "sqlite"

# PG* variable -> StoreConfig field, read only by StoreConfig.from_env()
PG_ENV_VARS = {
    "PGDATABASE": "database",
    "PGHOSTADDR": "host",
    "PGHOST": "host",
    "PGPORT": "port",
    "PGUSER": "user",
    "PGPASSWORD": "password",
}


def parse_location(location: str) -> tuple[str | None, str]:
    """
    Split a location string into (database, table).

    The last path component names the table. A location starting with
    "/" names the database in its first component: "/mydb/mytable".

    Raises:
        ConfigurationError: If the table name is missing or the location
            has more components than database and table.
    """
    if not location:
        raise ConfigurationError("location must specify table name")

    parts = location.split("/")
    table = parts.pop()
    if not table:
        raise ConfigurationError("location must specify table name")

    database = None
    if location.startswith("/"):
        parts.pop(0)
        database = (parts.pop(0) if parts else "") or None

    if parts:
        raise ConfigurationError(f"sublevel paths are not supported: {location!r}")

    return database, table


@dataclass(frozen=True)
class StoreConfig:
    """
    Configuration for a Store.

    Attributes:
        table: Name of the backing two-column table.
        backend: "postgres" or "sqlite".
        database: Database name (postgres) or database file path (sqlite).
        host, port, user, password: Connection parameters, None = driver default.
        pool_min_size: Connections kept open by the pool.
        pool_max_size: Upper bound on pooled connections.
        fetch_size: Rows fetched per cursor round-trip while iterating.
        value_column: Storage type of the value column.
        keys_as_bytes: Return keys as bytes instead of str.
        values_as_bytes: Return values as bytes instead of str.
        sqlite_timeout: Seconds sqlite waits on a locked database.
    """

    # Default pool sizing
    DEFAULT_POOL_MIN_SIZE = 2
    DEFAULT_POOL_MAX_SIZE = 20

    # Default rows per cursor fetch
    DEFAULT_FETCH_SIZE = 100

    table: str
    backend: str = POSTGRES
    database: str = "postgres"
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    pool_min_size: int = DEFAULT_POOL_MIN_SIZE
    pool_max_size: int = DEFAULT_POOL_MAX_SIZE
    fetch_size: int = DEFAULT_FETCH_SIZE
    value_column: ColumnType = ColumnType.BYTES
    keys_as_bytes: bool = False
    values_as_bytes: bool = False
    sqlite_timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.table or not self.table.strip():
            raise ConfigurationError("location must specify table name")
        if self.backend not in (POSTGRES, SQLITE):
            raise ConfigurationError(f"unsupported backend: {self.backend!r}")
        if not self.database:
            raise ConfigurationError("database cannot be empty")
        if self.pool_min_size < 0:
            raise ConfigurationError(
                f"pool_min_size must be >= 0, got {self.pool_min_size}"
            )
        if self.pool_max_size < 1:
            raise ConfigurationError(
                f"pool_max_size must be >= 1, got {self.pool_max_size}"
            )
        if self.pool_min_size > self.pool_max_size:
            raise ConfigurationError(
                f"pool_min_size ({self.pool_min_size}) cannot exceed "
                f"pool_max_size ({self.pool_max_size})"
            )
        if self.fetch_size < 1:
            raise ConfigurationError(f"fetch_size must be >= 1, got {self.fetch_size}")
        if not isinstance(self.value_column, ColumnType):
            raise ConfigurationError(f"unsupported value column: {self.value_column!r}")

    @classmethod
    def from_location(cls, location: str, **overrides) -> "StoreConfig":
        """
        Build a config from a location string.

        Args:
            location: "table" or "/database/table".
            **overrides: Any other StoreConfig field. An explicit database
                         wins over the one named in the location.
        """
        database, table = parse_location(location)
        if database:
            overrides.setdefault("database", database)
        return cls(table=table, **overrides)

    @classmethod
    def from_env(
        cls,
        location: str,
        environ: Mapping[str, str] | None = None,
        **overrides,
    ) -> "StoreConfig":
        """
        Build a config from a location, filling defaults from PG* variables.

        Precedence: explicit overrides, then the location's database
        component, then the environment.

        Args:
            location: "table" or "/database/table".
            environ: Variables to read. Defaults to os.environ.
            **overrides: Any other StoreConfig field.
        """
        environ = os.environ if environ is None else environ

        defaults: dict = {}
        # Earlier names win (PGHOSTADDR over PGHOST)
        for var, name in PG_ENV_VARS.items():
            if environ.get(var) and name not in defaults:
                defaults[name] = environ[var]
        if "port" in defaults:
            try:
                defaults["port"] = int(defaults["port"])
            except ValueError:
                raise ConfigurationError(
                    f"PGPORT is not a number: {defaults['port']!r}"
                ) from None

        database, _ = parse_location(location)
        if database:
            defaults["database"] = database

        return cls.from_location(location, **{**defaults, **overrides})

    def conninfo(self) -> str:
        """Return a libpq connection string for the postgres backend."""
        return make_conninfo(
            dbname=self.database,
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
        )
