"""
Storage for the ``payments`` table.

Every method runs exactly one SQL statement in its own transaction; there are
no retries. Database failures surface as ``StorageError`` with the driver
error chained, so callers can log the detail without showing it to users.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping
from urllib.parse import quote_plus

from sqlalchemy import (
    CHAR,
    Column,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from payments import AccountCategory, Payment, PaymentMethod, PaymentRecord, PaymentsError

log = logging.getLogger(__name__)

TABLE = "payments"
DB_ENV_VARS = ("DB_HOST", "DB_PORT", "DB_USER", "DB_PASSWORD", "DB_NAME")
CENT = Decimal("0.01")

metadata = MetaData()

payments_table = Table(
    TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_category", String(32), nullable=False),
    Column("payee", String(255), nullable=False),
    Column("amount", Numeric(14, 2), nullable=False),
    Column("payment_month", CHAR(7), nullable=False),
    Column("payment_method", String(32), nullable=False),
)


class StorageError(PaymentsError):
    """The database could not run a statement."""


class NotFoundError(PaymentsError):
    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"payment {payment_id} not found")


class ConfigError(PaymentsError):
    """Database settings are missing from the environment."""


@dataclass(frozen=True)
class MonthlyTotal:
    account_category: AccountCategory
    payment_month: str
    total_amount: Decimal


def make_db_url(environ: Mapping[str, str] | None = None) -> str:
    """Build a MySQL URL from the DB_* environment variables."""

    env = os.environ if environ is None else environ
    values = {}
    for name in DB_ENV_VARS:
        v = env.get(name)
        if not v:
            raise ConfigError(f"Missing env var: {name}")
        values[name] = v
    user = quote_plus(values["DB_USER"])
    pw = quote_plus(values["DB_PASSWORD"])
    return f"mysql+pymysql://{user}:{pw}@{values['DB_HOST']}:{values['DB_PORT']}/{values['DB_NAME']}"


def create_payments_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


# Rows written before the English values existed hold the source labels.
_STORED_CATEGORIES = {**{c.value: c for c in AccountCategory}, **{c.label: c for c in AccountCategory}}
_STORED_METHODS = {**{m.value: m for m in PaymentMethod}, **{m.label: m for m in PaymentMethod}}


def _to_decimal(value) -> Decimal:
    # SQLite hands back int/float for NUMERIC(14, 2), MySQL a Decimal.
    # Stored amounts carry at most two decimals, so a float is rounded back to cents.
    if isinstance(value, float):
        return Decimal(repr(value)).quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value.as_tuple().exponent > -2:
        value = value.quantize(CENT)
    return value


def _from_stored(mapping: dict, column: str, value):
    try:
        return mapping[value]
    except KeyError:
        raise StorageError(f"unknown {column} {value!r} in {TABLE}") from None


def _row_to_payment(row) -> Payment:
    try:
        amount = _to_decimal(row["amount"])
    except ArithmeticError as exc:
        raise StorageError(f"unreadable amount in {TABLE}: id={row['id']}") from exc
    return Payment(
        id=int(row["id"]),
        account_category=_from_stored(_STORED_CATEGORIES, "account_category", row["account_category"]),
        payee=row["payee"],
        amount=amount,
        payment_month=row["payment_month"],
        payment_method=_from_stored(_STORED_METHODS, "payment_method", row["payment_method"]),
    )


class PaymentStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self) -> None:
        try:
            metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise StorageError(f"could not create table {TABLE}") from exc

    def create(self, record: PaymentRecord) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    text(f"""
                        INSERT INTO {TABLE} (account_category, payee, amount, payment_month, payment_method)
                        VALUES (:account_category, :payee, :amount, :payment_month, :payment_method)
                    """),
                    record.as_params(),
                )
                new_id = int(result.lastrowid)
        except SQLAlchemyError as exc:
            raise StorageError("insert failed") from exc
        log.info("payment %s created", new_id)
        return new_id

    def list_aggregated(self) -> list[MonthlyTotal]:
        """Sum amounts per (payment_month, account_category)."""
        try:
            with self.engine.connect() as conn:
                rows = (
                    conn.execute(
                        text(f"""
                            SELECT SUM(amount) AS total_amount, account_category, payment_month
                            FROM {TABLE}
                            GROUP BY payment_month, account_category
                            ORDER BY payment_month, account_category
                        """)
                    )
                    .mappings()
                    .all()
                )
        except SQLAlchemyError as exc:
            raise StorageError("aggregate query failed") from exc
        # A legacy label and its English value are grouped apart by SQL; merge them here.
        sums: dict[tuple[str, AccountCategory], Decimal] = {}
        for r in rows:
            category = _from_stored(_STORED_CATEGORIES, "account_category", r["account_category"])
            key = (r["payment_month"], category)
            sums[key] = sums.get(key, Decimal(0)) + _to_decimal(r["total_amount"])
        return [
            MonthlyTotal(account_category=category, payment_month=month, total_amount=total)
            for (month, category), total in sorted(sums.items(), key=lambda kv: (kv[0][0], kv[0][1].value))
        ]

    def list_all(self) -> list[Payment]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text(f"SELECT * FROM {TABLE} ORDER BY id DESC")).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError("list query failed") from exc
        return [_row_to_payment(r) for r in rows]

    def get(self, payment_id: int) -> Payment:
        try:
            with self.engine.connect() as conn:
                row = (
                    conn.execute(text(f"SELECT * FROM {TABLE} WHERE id = :id"), {"id": payment_id})
                    .mappings()
                    .first()
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"lookup of payment {payment_id} failed") from exc
        if row is None:
            raise NotFoundError(payment_id)
        return _row_to_payment(row)

    def update(self, payment_id: int, record: PaymentRecord) -> bool:
        """Replace every field but the id. Returns False when no row matched."""
        params = record.as_params()
        params["id"] = payment_id
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    text(f"""
                        UPDATE {TABLE}
                        SET account_category = :account_category, payee = :payee, amount = :amount,
                            payment_month = :payment_month, payment_method = :payment_method
                        WHERE id = :id
                    """),
                    params,
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"update of payment {payment_id} failed") from exc
        if result.rowcount == 0:
            log.warning("update skipped: payment %s does not exist", payment_id)
            return False
        log.info("payment %s updated", payment_id)
        return True

    def delete(self, payment_id: int) -> bool:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(f"DELETE FROM {TABLE} WHERE id = :id"), {"id": payment_id})
        except SQLAlchemyError as exc:
            raise StorageError(f"delete of payment {payment_id} failed") from exc
        if result.rowcount == 0:
            log.warning("delete skipped: payment %s does not exist", payment_id)
            return False
        log.info("payment %s deleted", payment_id)
        return True
