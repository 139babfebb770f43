import threading
from datetime import date, datetime, timezone
from typing import Any, Callable, Protocol

import structlog
from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Table,
    create_engine,
    event,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from studygen.config import Config
from studygen.models import UsageRecord

logger = structlog.get_logger()


def utc_now() -> "datetime":
    return datetime.now(timezone.utc)


class UsageStore(Protocol):
    """
    UsageStore is the backing storage of the usage ledger. One record
    exists per UTC date and increments to the same date must never
    lose updates.
    """

    def get(self, day: "date") -> "UsageRecord": ...

    def increment(
        self,
        day: "date",
        input_tokens: "int",
        output_tokens: "int",
        now: "datetime",
    ) -> "UsageRecord": ...


class InMemoryUsageStore:
    """
    InMemoryUsageStore: Is a thread-safe, process-local usage store.

    The lock is held only for the read-modify-write of a single date,
    never across provider calls.
    """

    def __init__(self) -> "None":
        self._lock: "threading.Lock" = threading.Lock()
        self._records: "dict[date, UsageRecord]" = {}

    def get(self, day: "date") -> "UsageRecord":
        with self._lock:
            return self._records.get(day) or UsageRecord(date=day)

    def increment(
        self,
        day: "date",
        input_tokens: "int",
        output_tokens: "int",
        now: "datetime",
    ) -> "UsageRecord":
        with self._lock:
            current = self._records.get(day) or UsageRecord(date=day)
            updated = UsageRecord(
                date=day,
                input_tokens=current.input_tokens + input_tokens,
                output_tokens=current.output_tokens + output_tokens,
                call_count=current.call_count + 1,
                last_updated=now,
            )
            self._records[day] = updated
            return updated


metadata = MetaData()

usage_tracking = Table(
    "usage_tracking",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("date", Date, nullable=False, unique=True),
    Column("input_tokens", BigInteger, nullable=False, default=0),
    Column("output_tokens", BigInteger, nullable=False, default=0),
    Column("api_call_count", Integer, nullable=False, default=0),
    Column("last_updated", DateTime(timezone=True), nullable=True),
)


def _disable_driver_begin(dbapi_conn: "Any", _record: "Any") -> "None":
    dbapi_conn.isolation_level = None


def _begin_immediate(conn: "Connection") -> "None":
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def _use_immediate_transactions(engine: "Engine") -> "None":
    # a deferred SQLite transaction fails at once when it has to upgrade
    # its lock, an immediate one waits on the busy timeout.
    # listeners are registered once per engine, a second BEGIN would fail
    if event.contains(engine, "begin", _begin_immediate):
        return

    event.listen(engine, "connect", _disable_driver_begin)
    event.listen(engine, "begin", _begin_immediate)


class SqlUsageStore:
    """
    SqlUsageStore keeps one usage_tracking row per date in a relational
    database. Increments are single UPDATE statements that add to the
    stored columns, so concurrent writers in any number of processes
    cannot overwrite each other. The row for a new day is inserted
    lazily by the first increment of that day.

    SQLite engines are switched to BEGIN IMMEDIATE transactions.
    """

    def __init__(self, engine: "Engine", create_tables: "bool" = True) -> "None":
        self._engine = engine
        if engine.dialect.name == "sqlite":
            _use_immediate_transactions(engine)
        if create_tables:
            metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: "str") -> "SqlUsageStore":
        return cls(create_engine(url))

    def get(self, day: "date") -> "UsageRecord":
        with self._engine.connect() as conn:
            return self._read(conn, day)

    def increment(
        self,
        day: "date",
        input_tokens: "int",
        output_tokens: "int",
        now: "datetime",
    ) -> "UsageRecord":
        add = (
            update(usage_tracking)
            .where(usage_tracking.c.date == day)
            .values(
                input_tokens=usage_tracking.c.input_tokens + input_tokens,
                output_tokens=usage_tracking.c.output_tokens + output_tokens,
                api_call_count=usage_tracking.c.api_call_count + 1,
                last_updated=now,
            )
        )

        with self._engine.begin() as conn:
            if conn.execute(add).rowcount:
                return self._read(conn, day)

        try:
            with self._engine.begin() as conn:
                conn.execute(
                    insert(usage_tracking).values(
                        date=day,
                        input_tokens=input_tokens,
                        output_tokens=output_tokens,
                        api_call_count=1,
                        last_updated=now,
                    )
                )
                return self._read(conn, day)
        except IntegrityError:
            # another writer created the row for this day first
            logger.debug("usage_row_insert_conflict", date=day.isoformat())

        with self._engine.begin() as conn:
            conn.execute(add)
            return self._read(conn, day)

    @staticmethod
    def _read(conn: "Connection", day: "date") -> "UsageRecord":
        row = conn.execute(
            select(usage_tracking).where(usage_tracking.c.date == day)
        ).first()
        if row is None:
            return UsageRecord(date=day)

        return UsageRecord(
            date=row.date,
            input_tokens=row.input_tokens,
            output_tokens=row.output_tokens,
            call_count=row.api_call_count,
            last_updated=row.last_updated,
        )


class UsageLedger:
    """
    UsageLedger is the daily token budget gate in front of every
    generation call.

    check_budget() and record() are not atomic with the provider call
    between them: concurrent requests may push today's total past the
    limit by at most one call's tokens. The counters themselves are
    always exact because the store serializes increments.
    """

    def __init__(
        self,
        store: "UsageStore",
        daily_limit: "int" = 1_000_000,
        enabled: "bool" = True,
        clock: "Callable[[], datetime]" = utc_now,
    ) -> "None":
        self._store = store
        self._daily_limit = daily_limit
        self._enabled = enabled
        self._clock = clock

    @property
    def enabled(self) -> "bool":
        return self._enabled

    def _today(self) -> "date":
        return self._clock().astimezone(timezone.utc).date()

    def daily_limit(self) -> "int":
        return self._daily_limit

    def today_usage(self) -> "UsageRecord":
        return self._store.get(self._today())

    def check_budget(self) -> "bool":
        """
        returns False once today's input+output total has reached the
        daily limit. Always True when rate limiting is disabled.
        """
        if not self._enabled:
            return True

        usage = self.today_usage()
        if usage.total_tokens >= self._daily_limit:
            logger.warning(
                "daily_limit_reached",
                used_tokens=usage.total_tokens,
                limit=self._daily_limit,
            )
            return False

        return True

    def record(self, input_tokens: "int", output_tokens: "int") -> "UsageRecord":
        """
        adds one call's tokens to today's record. Runs regardless of the
        enabled flag so historical usage stays accurate.
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must not be negative")

        now = self._clock()
        usage = self._store.increment(
            now.astimezone(timezone.utc).date(), input_tokens, output_tokens, now
        )
        logger.info(
            "usage_recorded",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            daily_total=usage.total_tokens,
            call_count=usage.call_count,
        )
        return usage


def create_ledger(config: "Config") -> "UsageLedger":
    store: "UsageStore"
    if config.database_url:
        store = SqlUsageStore.from_url(config.database_url)
    else:
        store = InMemoryUsageStore()

    return UsageLedger(
        store,
        daily_limit=config.daily_token_limit,
        enabled=config.rate_limiting_enabled,
    )
