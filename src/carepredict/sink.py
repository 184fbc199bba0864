"""
Relational source and destination adapters.

The destination is an existing table that deployment appends rows to.
The sink never creates or alters tables. A sink holds one connection for
the duration of a ``with`` block and releases it on exit, whether or not
the write succeeded. It provides no locking: concurrent writers to the
same table must coordinate outside this package.
"""

from types import TracebackType

import pandas as pd
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from carepredict.config.settings import SinkConfig
from carepredict.errors import SinkWriteError
from carepredict.utils.logging import get_logger

log = get_logger(__name__)


class DestinationSink:
    """
    Append-only writer for an existing table.

    Example:
        with DestinationSink(config.sink) as sink:
            sink.append(records)

    Args:
        config: Sink configuration with database URL and destination table.
        engine: Optional pre-built engine (not disposed on exit).
    """

    def __init__(self, config: SinkConfig, *, engine: Engine | None = None) -> None:
        if config.table_name is None:
            msg = "Sink requires a destination table"
            raise SinkWriteError(msg)
        if engine is None and config.url is None:
            msg = "Sink requires a database URL"
            raise SinkWriteError(msg)
        self.config = config
        self._engine = engine
        self._owns_engine = engine is None
        self._connection: Connection | None = None

    def __enter__(self) -> "DestinationSink":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def open(self) -> None:
        """Open the connection."""
        try:
            if self._engine is None:
                self._engine = create_engine(str(self.config.url))
            self._connection = self._engine.connect()
        except SQLAlchemyError as e:
            self.close()
            msg = f"Could not connect to destination database: {e}"
            raise SinkWriteError(msg) from e
        log.debug("Opened sink connection", table=self.config.dest_table)

    def close(self) -> None:
        """Release the connection (and the engine if this sink created it)."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
        log.debug("Closed sink connection", table=self.config.dest_table)

    def append(self, records: pd.DataFrame) -> int:
        """
        Append ``records`` as new rows of the destination table.

        Args:
            records: Rows to insert; columns must match the table.

        Returns:
            Number of rows written.

        Raises:
            SinkWriteError: If not connected, the table does not exist, or
                the insert fails. The records are attached to the error.
        """
        if self._connection is None:
            msg = "Sink is not open"
            raise SinkWriteError(msg, records=records)

        table = self.config.table_name
        schema = self.config.schema_name
        try:
            exists = inspect(self._connection).has_table(table, schema=schema)
        except SQLAlchemyError as e:
            msg = f"Could not inspect destination table {self.config.dest_table}: {e}"
            raise SinkWriteError(msg, records=records) from e

        if not exists:
            msg = (
                f"Destination table {self.config.dest_table} does not exist. "
                "Create it with a compatible schema before deploying."
            )
            raise SinkWriteError(msg, records=records)

        try:
            records.to_sql(
                table,
                self._connection,
                schema=schema,
                if_exists="append",
                index=False,
            )
            self._connection.commit()
        except (SQLAlchemyError, ValueError) as e:
            self._connection.rollback()
            msg = f"Insert into {self.config.dest_table} failed: {e}"
            raise SinkWriteError(msg, records=records) from e

        log.info("Appended records", table=self.config.dest_table, rows=len(records))
        return len(records)


def read_source(url: str, query: str) -> pd.DataFrame:
    """
    Run ``query`` against ``url`` and return the result as a DataFrame.

    The engine is disposed before returning.
    """
    engine = create_engine(url)
    try:
        with engine.connect() as connection:
            df = pd.read_sql_query(query, connection)
    finally:
        engine.dispose()
    log.info("Loaded source data", rows=len(df), columns=df.shape[1])
    return df
