"""
Database Manager for ClearMarkup.

This module provides the process-wide data-access primitive used by the query
builder. It owns the SQLAlchemy engine, reflects tables by name and executes
``select``/``get``/``has``/``count``/``insert``/``update``/``delete`` calls
described by condition maps, plus ``action`` for atomic callbacks.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Generator, Iterable, List, Mapping, Optional, Sequence, TypeVar, Union

import sqlalchemy as sa
from sqlalchemy import URL, Connection, Engine, MetaData, create_engine, event, text
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clearmarkup.core.base import ClearMarkupManager
from clearmarkup.core.database.conditions import apply_conditions, resolve_column, where_only
from clearmarkup.models.base import Base
from clearmarkup.utils.exceptions import DatabaseError, QueryError

T = TypeVar('T')

Columns = Union[str, Sequence[str]]
Conditions = Optional[Mapping[str, Any]]


class ConnectionType(str, Enum):
    """Supported database connection types."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    ORACLE = "oracle"
    MSSQL = "mssql"


class DatabaseConnectionConfig:
    """Configuration for the database connection."""

    def __init__(
            self,
            db_type: str,
            host: str = "",
            port: int = 0,
            database: str = "",
            user: str = "",
            password: str = "",
            charset: Optional[str] = None,
            prefix: str = "",
            pool_size: int = 5,
            max_overflow: int = 10,
            pool_recycle: int = 3600,
            echo: bool = False,
            url: Optional[Union[str, URL]] = None,
            slow_query_seconds: float = 1.0,
    ) -> None:
        """Initialize a database connection configuration.

        Args:
            db_type: Type of database (sqlite, postgresql, mysql, mariadb, mssql, oracle)
            host: Database host address
            port: Database port number
            database: Database name or SQLite file path
            user: Database username
            password: Database password
            charset: Client character set, for MySQL and MariaDB
            prefix: Prefix prepended to every table name
            pool_size: Connection pool size
            max_overflow: Maximum overflow connections
            pool_recycle: Connection recycling time in seconds
            echo: Enable SQLAlchemy statement echo
            url: Full SQLAlchemy URL (overrides the individual parameters)
            slow_query_seconds: Queries slower than this are logged as warnings
        """
        self.db_type = db_type.lower()
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.charset = charset
        self.prefix = prefix or ""
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_recycle = pool_recycle
        self.echo = echo
        self.url = url
        self.slow_query_seconds = slow_query_seconds

    @classmethod
    def from_dict(cls, db_config: Mapping[str, Any]) -> "DatabaseConnectionConfig":
        db_type = str(db_config.get("type", "sqlite")).lower()
        return cls(
            db_type=db_type,
            host=db_config.get("host") or "localhost",
            port=db_config.get("port") or DatabaseManager._get_default_port(db_type),
            database=db_config.get("name") or "",
            user=db_config.get("user") or "",
            password=db_config.get("password") or "",
            charset=db_config.get("charset"),
            prefix=db_config.get("prefix") or "",
            pool_size=db_config.get("pool_size", 5),
            max_overflow=db_config.get("max_overflow", 10),
            pool_recycle=db_config.get("pool_recycle", 3600),
            echo=bool(db_config.get("echo", False)),
            url=db_config.get("url"),
            slow_query_seconds=float(db_config.get("slow_query_seconds", 1.0)),
        )


class QueryMetrics:
    """Counters and timings for executed statements."""

    def __init__(self) -> None:
        self.queries_total = 0
        self.queries_failed = 0
        self.query_times: List[float] = []
        self.lock = threading.Lock()

    def record(self, query_time: float) -> None:
        with self.lock:
            self.queries_total += 1
            self.query_times.append(query_time)
            if len(self.query_times) > 100:
                self.query_times.pop(0)

    def record_failure(self) -> None:
        with self.lock:
            self.queries_failed += 1

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            stats: Dict[str, Any] = {
                "total": self.queries_total,
                "failed": self.queries_failed,
                "success_rate": (
                    (self.queries_total - self.queries_failed) / self.queries_total * 100
                    if self.queries_total > 0 else 100.0
                ),
            }
            if self.query_times:
                stats.update({
                    "avg_time_ms": round(sum(self.query_times) / len(self.query_times) * 1000, 2),
                    "max_time_ms": round(max(self.query_times) * 1000, 2),
                    "last_queries": len(self.query_times),
                })
            return stats


class DatabaseManager(ClearMarkupManager):
    """Data-access primitive backed by a SQLAlchemy engine.

    Every operation names its table as a string and describes rows with a
    condition map (see :mod:`clearmarkup.core.database.conditions`). Tables are
    reflected on first use. The manager is created once per process and
    passed to query builders explicitly.
    """

    def __init__(self, config_manager: Any, logger_manager: Any) -> None:
        """Initialize the database manager.

        Args:
            config_manager: The configuration manager instance
            logger_manager: The logger manager instance
        """
        super().__init__(name="database_manager")
        self._config_manager = config_manager
        self._logger = logger_manager.get_logger("database_manager")
        self._config: Optional[DatabaseConnectionConfig] = None
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._metadata = MetaData()
        self._metadata_lock = threading.Lock()
        self._metrics = QueryMetrics()
        self._local = threading.local()

    def initialize(self) -> None:
        """Initialize the database manager.

        Raises:
            ManagerInitializationError: If initialization fails
        """
        try:
            db_config = self._config_manager.get("database", {})
            self._config = DatabaseConnectionConfig.from_dict(db_config)

            self._engine = create_engine(
                self._build_url(self._config),
                **self._engine_args(self._config)
            )
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

            event.listen(self._engine, "before_cursor_execute", self._before_cursor_execute)
            event.listen(self._engine, "after_cursor_execute", self._after_cursor_execute)

            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            self._config_manager.register_listener("database", self._on_config_changed)

            self._mark_started()

            self._logger.info(
                f"Database Manager initialized with {self._config.db_type} database",
                extra={
                    "host": self._config.host,
                    "port": self._config.port,
                    "database": self._config.database,
                }
            )
        except Exception as e:
            self._logger.error(f"Failed to initialize Database Manager: {str(e)}")
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
            raise self._initialization_failed(e) from e

    @staticmethod
    def _build_url(config: DatabaseConnectionConfig) -> Union[str, URL]:
        """Build the SQLAlchemy URL for a connection configuration."""
        if config.url:
            return config.url

        if config.db_type == ConnectionType.SQLITE:
            return f"sqlite:///{config.database or ':memory:'}"

        drivers = {
            ConnectionType.POSTGRESQL: "postgresql",
            ConnectionType.MYSQL: "mysql+pymysql",
            ConnectionType.MARIADB: "mariadb+pymysql",
            ConnectionType.MSSQL: "mssql+pyodbc",
            ConnectionType.ORACLE: "oracle+oracledb",
        }
        if config.db_type not in drivers:
            raise DatabaseError(f"Unsupported database type: {config.db_type}")

        query: Dict[str, str] = {}
        if config.charset and config.db_type in (ConnectionType.MYSQL, ConnectionType.MARIADB):
            query["charset"] = config.charset

        return URL.create(
            drivers[config.db_type],
            username=config.user or None,
            password=config.password or None,
            host=config.host or None,
            port=config.port or None,
            database=config.database or None,
            query=query,
        )

    @staticmethod
    def _engine_args(config: DatabaseConnectionConfig) -> Dict[str, Any]:
        """Engine keyword arguments; SQLite has no server-side pool to size."""
        if config.db_type == ConnectionType.SQLITE and not config.url:
            engine_args: Dict[str, Any] = {"echo": config.echo}
            if config.database in ("", ":memory:"):
                engine_args["poolclass"] = StaticPool
                engine_args["connect_args"] = {"check_same_thread": False}
            return engine_args

        return {
            "pool_size": config.pool_size,
            "max_overflow": config.max_overflow,
            "pool_recycle": config.pool_recycle,
            "pool_pre_ping": True,
            "echo": config.echo,
        }

    @staticmethod
    def _get_default_port(db_type: str) -> int:
        """Get the default port for a database type.

        Args:
            db_type: The database type

        Returns:
            int: The default port number
        """
        default_ports = {
            "postgresql": 5432,
            "mysql": 3306,
            "mariadb": 3306,
            "oracle": 1521,
            "mssql": 1433,
            "sqlite": 0,
        }
        return default_ports.get(db_type, 0)

    def _require_engine(self) -> Engine:
        if not self._initialized or self._engine is None:
            raise DatabaseError("Database Manager not initialized")
        return self._engine

    @contextmanager
    def _connection(self) -> Generator[Connection, None, None]:
        """Yield the connection of the running ``action`` or a fresh autocommitting one."""
        engine = self._require_engine()
        active = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return
        with engine.begin() as conn:
            yield conn

    def table_name(self, table: str) -> str:
        """Return the physical table name, with the configured prefix."""
        if not table:
            raise QueryError("Table name must not be empty")
        prefix = self._config.prefix if self._config else ""
        return f"{prefix}{table}"

    def _table(self, conn: Connection, table: str) -> sa.Table:
        """Reflect a table by name, caching the result."""
        name = self.table_name(table)
        with self._metadata_lock:
            if name in self._metadata.tables:
                return self._metadata.tables[name]
            try:
                return sa.Table(name, self._metadata, autoload_with=conn)
            except NoSuchTableError:
                raise QueryError(f"Table '{name}' does not exist", table=name) from None

    def _run(self, table: str, build: Callable[[sa.Table], Any], handle: Callable[[Any], T]) -> T:
        """Build a statement for a reflected table, execute it and convert the result.

        Raises:
            DatabaseError: If SQLAlchemy fails to compile or execute the statement
        """
        statement = None
        try:
            with self._connection() as conn:
                statement = build(self._table(conn, table))
                return handle(conn.execute(statement))
        except SQLAlchemyError as e:
            self._metrics.record_failure()
            self._logger.error(f"Database error: {str(e)}")
            raise DatabaseError(
                f"Database error: {str(e)}",
                query=str(statement) if statement is not None else None
            ) from e

    def _projection(self, table: sa.Table, columns: Columns) -> List[Any]:
        if columns == "*":
            return [table]
        if isinstance(columns, str):
            return [resolve_column(table, columns)]
        if not columns:
            raise QueryError("Projection must name at least one column", table=table.name)
        return [resolve_column(table, column) for column in columns]

    def select(self, table: str, columns: Columns = "*", where: Conditions = None) -> List[Any]:
        """Fetch all rows matching a condition map.

        Args:
            table: Table name (without prefix)
            columns: ``"*"``, a list of column names, or a single column name
            where: Condition map, may carry ORDER and LIMIT

        Returns:
            List of row mappings, or of scalars when ``columns`` is a single name
        """
        scalar = isinstance(columns, str) and columns != "*"

        def build(tbl: sa.Table) -> Any:
            return apply_conditions(sa.select(*self._projection(tbl, columns)), tbl, where)

        def handle(result: Any) -> List[Any]:
            if scalar:
                return list(result.scalars().all())
            return [dict(row) for row in result.mappings().all()]

        return self._run(table, build, handle)

    def get(self, table: str, columns: Columns = "*", where: Conditions = None) -> Any:
        """Fetch the first row matching a condition map.

        Returns:
            A row mapping, a scalar when ``columns`` is a single name, or None
        """
        scalar = isinstance(columns, str) and columns != "*"
        conditions = dict(where or {})
        conditions["LIMIT"] = 1

        def build(tbl: sa.Table) -> Any:
            return apply_conditions(sa.select(*self._projection(tbl, columns)), tbl, conditions)

        def handle(result: Any) -> Any:
            if scalar:
                return result.scalars().first()
            row = result.mappings().first()
            return dict(row) if row is not None else None

        return self._run(table, build, handle)

    def has(self, table: str, where: Conditions = None) -> bool:
        """Check whether at least one row matches a condition map."""
        def build(tbl: sa.Table) -> Any:
            inner = sa.select(sa.literal(1)).select_from(tbl)
            clause = where_only(tbl, where)
            if clause is not None:
                inner = inner.where(clause)
            return sa.select(inner.exists())

        return self._run(table, build, lambda result: bool(result.scalar()))

    def count(self, table: str, where: Conditions = None) -> int:
        """Count the rows matching a condition map."""
        def build(tbl: sa.Table) -> Any:
            statement = sa.select(sa.func.count()).select_from(tbl)
            clause = where_only(tbl, where)
            if clause is not None:
                statement = statement.where(clause)
            return statement

        return self._run(table, build, lambda result: int(result.scalar() or 0))

    def insert(self, table: str, data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> Any:
        """Insert one row (a mapping) or several rows (a list of mappings).

        Returns:
            The inserted primary key for a single row with a one-column key,
            otherwise the number of inserted rows
        """
        if isinstance(data, Mapping):
            def build(tbl: sa.Table) -> Any:
                return sa.insert(tbl).values(**dict(data))

            def handle(result: Any) -> Any:
                primary_key = result.inserted_primary_key
                if primary_key is not None and len(primary_key) == 1:
                    return primary_key[0]
                return result.rowcount

            return self._run(table, build, handle)

        rows = [dict(row) for row in data]
        if not rows:
            return 0
        try:
            with self._connection() as conn:
                result = conn.execute(sa.insert(self._table(conn, table)), rows)
                return result.rowcount
        except SQLAlchemyError as e:
            self._metrics.record_failure()
            self._logger.error(f"Database error: {str(e)}")
            raise DatabaseError(f"Database error: {str(e)}", query=f"INSERT INTO {table}") from e

    def update(self, table: str, data: Mapping[str, Any], where: Conditions = None) -> int:
        """Apply ``data`` to every row matching a condition map.

        Returns:
            The number of affected rows
        """
        def build(tbl: sa.Table) -> Any:
            statement = sa.update(tbl).values(**dict(data))
            clause = where_only(tbl, where)
            return statement.where(clause) if clause is not None else statement

        return self._run(table, build, lambda result: result.rowcount)

    def delete(self, table: str, where: Conditions = None) -> int:
        """Delete every row matching a condition map.

        Returns:
            The number of deleted rows
        """
        def build(tbl: sa.Table) -> Any:
            statement = sa.delete(tbl)
            clause = where_only(tbl, where)
            return statement.where(clause) if clause is not None else statement

        return self._run(table, build, lambda result: result.rowcount)

    def action(self, callback: Callable[["DatabaseManager"], T]) -> T:
        """Run ``callback`` atomically.

        The callback receives this manager; every call it makes through the
        manager, directly or through query builders, shares one transaction.
        Returning ``False`` or raising rolls the transaction back; exceptions
        propagate. Nested calls run inside the outer transaction.

        Args:
            callback: Function taking the manager

        Returns:
            Whatever the callback returned
        """
        engine = self._require_engine()

        if getattr(self._local, "connection", None) is not None:
            return callback(self)

        with engine.connect() as conn:
            transaction = conn.begin()
            self._local.connection = conn
            try:
                result = callback(self)
            except BaseException:
                transaction.rollback()
                self._logger.warning("Transaction rolled back after an error")
                raise
            finally:
                self._local.connection = None

            try:
                if result is False:
                    transaction.rollback()
                    self._logger.debug("Transaction rolled back by callback")
                else:
                    transaction.commit()
            except SQLAlchemyError as e:
                self._metrics.record_failure()
                self._logger.error(f"Failed to finish transaction: {str(e)}")
                raise DatabaseError(f"Failed to finish transaction: {str(e)}") from e

            return result

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "connection", None) is not None

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get an ORM session that commits on success and rolls back on error.

        Yields:
            Session: A SQLAlchemy session

        Raises:
            DatabaseError: If the session fails
        """
        self._require_engine()
        if self._session_factory is None:
            raise DatabaseError("Session factory not initialized")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self._metrics.record_failure()
            self._logger.error(f"Database error: {str(e)}")
            raise DatabaseError(f"Database error: {str(e)}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self, metadata: Optional[MetaData] = None) -> None:
        """Create all tables of a metadata collection (defaults to the model base)."""
        engine = self._require_engine()
        try:
            (metadata or Base.metadata).create_all(engine)
        except SQLAlchemyError as e:
            self._logger.error(f"Failed to create tables: {str(e)}")
            raise DatabaseError(f"Failed to create tables: {str(e)}") from e
        self.forget_tables()

    def forget_tables(self, names: Optional[Iterable[str]] = None) -> None:
        """Drop cached reflections so the next call sees schema changes."""
        with self._metadata_lock:
            if names is None:
                self._metadata.clear()
                return
            for name in names:
                full_name = self.table_name(name)
                if full_name in self._metadata.tables:
                    self._metadata.remove(self._metadata.tables[full_name])

    def check_connection(self) -> bool:
        """Check if the connection is working."""
        try:
            engine = self._require_engine()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (DatabaseError, SQLAlchemyError):
            return False

    def get_engine(self) -> Optional[Engine]:
        """Get the SQLAlchemy engine, or None before initialization."""
        return self._engine if self._initialized else None

    def _before_cursor_execute(
            self,
            conn: Connection,
            cursor: Any,
            statement: str,
            parameters: Any,
            context: Any,
            executemany: bool
    ) -> None:
        """Event hook called before cursor execution."""
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    def _after_cursor_execute(
            self,
            conn: Connection,
            cursor: Any,
            statement: str,
            parameters: Any,
            context: Any,
            executemany: bool
    ) -> None:
        """Event hook called after cursor execution; records timing and flags slow queries."""
        started = conn.info.get("query_start_time")
        if not started:
            return
        query_time = time.perf_counter() - started.pop()
        self._metrics.record(query_time)

        threshold = self._config.slow_query_seconds if self._config else 1.0
        if query_time > threshold:
            self._logger.warning(
                f"Slow query: {query_time:.3f}s",
                extra={"query_time": query_time, "statement": statement[:1000]}
            )

    def _on_config_changed(self, key: str, value: Any) -> None:
        """Handle configuration changes.

        Args:
            key: The config key
            value: The config value
        """
        if key.startswith("database."):
            self._logger.warning(
                f"Configuration change to {key} requires restart to take effect",
                extra={"key": key}
            )

    def shutdown(self) -> None:
        """Shut down the database manager.

        Raises:
            ManagerShutdownError: If shutdown fails
        """
        if not self._initialized:
            return

        try:
            self._logger.info("Shutting down Database Manager")

            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
            self.forget_tables()

            self._config_manager.unregister_listener("database", self._on_config_changed)

            self._mark_stopped()

            self._logger.info("Database Manager shut down successfully")
        except Exception as e:
            self._logger.error(f"Failed to shut down Database Manager: {str(e)}")
            raise self._shutdown_failed(e) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the database manager.

        Returns:
            Dict[str, Any]: Status information
        """
        status = super().status()

        if self._initialized and self._config is not None:
            status.update({
                "database": {
                    "type": self._config.db_type,
                    "connection_ok": self.check_connection(),
                    "prefix": self._config.prefix,
                },
                "tables_reflected": len(self._metadata.tables),
                "queries": self._metrics.snapshot(),
            })

        return status
