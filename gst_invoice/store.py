"""SQLite persistence for numbered invoices.

Invoice numbers come from a single counter row that is incremented in the
same write-locked transaction as the invoice insert, so concurrent creators
(threads or processes sharing the database file) are serialized by SQLite
and never observe the same sequence value.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from dateutil import parser as dateutil_parser

from .config import DB_BUSY_TIMEOUT_MS, DEFAULT_CURRENCY
from .log import get_logger
from .models import Customer, Invoice
from .numbering import format_invoice_number
from .pricing import PricedLineItem

logger = get_logger(__name__)

SEQUENCE_NAME = "invoice"
# Extra attempts after a number collision before the create fails.
COLLISION_RETRIES = 1

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_number TEXT NOT NULL UNIQUE,
        invoice_date TEXT NOT NULL,
        currency TEXT NOT NULL,
        customer_name TEXT,
        customer_email TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice_items (
        invoice_id INTEGER NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        name TEXT NOT NULL,
        qty INTEGER NOT NULL CHECK (qty >= 1),
        rate TEXT NOT NULL,
        PRIMARY KEY (invoice_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice_sequence (
        name TEXT PRIMARY KEY,
        value INTEGER NOT NULL
    )
    """,
)


class StoreError(RuntimeError):
    """Raised when the invoice database cannot complete an operation."""


class InvoiceNumberCollision(StoreError):
    """Raised when a freshly assigned invoice number already exists."""

    def __init__(self, invoice_number: str) -> None:
        super().__init__(f"Invoice number {invoice_number} is already taken.")
        self.invoice_number = invoice_number


def _is_number_collision(exc: sqlite3.IntegrityError) -> bool:
    return "invoices.invoice_number" in str(exc)


class InvoiceStore:
    def __init__(
        self,
        db_path: Union[str, Path],
        busy_timeout_ms: int = DB_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open invoice database {self.db_path}: {exc}") from exc
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        except (sqlite3.Error, OverflowError) as exc:
            # OverflowError: an int outside the SQLite INTEGER range was bound.
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def _write_transaction(self) -> Iterator[sqlite3.Connection]:
        # BEGIN IMMEDIATE takes the database write lock up front.
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
        with self._write_transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            # Seed from existing rows so numbering continues where a store left off.
            conn.execute(
                "INSERT OR IGNORE INTO invoice_sequence (name, value) "
                "SELECT ?, COUNT(*) FROM invoices",
                (SEQUENCE_NAME,),
            )

    def _next_sequence(self, conn: sqlite3.Connection) -> int:
        conn.execute(
            "UPDATE invoice_sequence SET value = value + 1 WHERE name = ?",
            (SEQUENCE_NAME,),
        )
        row = conn.execute(
            "SELECT value FROM invoice_sequence WHERE name = ?",
            (SEQUENCE_NAME,),
        ).fetchone()
        return int(row[0])

    def _insert_numbered(
        self,
        conn: sqlite3.Connection,
        invoice_date: datetime,
        currency: str,
        customer: Optional[Customer],
    ) -> Tuple[int, str]:
        invoice_number = ""
        for attempt in range(COLLISION_RETRIES + 1):
            invoice_number = format_invoice_number(self._next_sequence(conn))
            try:
                cursor = conn.execute(
                    "INSERT INTO invoices (invoice_number, invoice_date, currency, "
                    "customer_name, customer_email, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        invoice_number,
                        invoice_date.isoformat(),
                        currency,
                        customer.name if customer else None,
                        customer.email if customer else None,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if not _is_number_collision(exc):
                    raise
                logger.warning(
                    "invoice_number_collision",
                    invoice_number=invoice_number,
                    attempt=attempt + 1,
                )
                continue
            return int(cursor.lastrowid), invoice_number
        raise InvoiceNumberCollision(invoice_number)

    def create_invoice(
        self,
        products: Sequence[PricedLineItem],
        customer: Optional[Customer] = None,
        currency: str = DEFAULT_CURRENCY,
        invoice_date: Optional[datetime] = None,
    ) -> Invoice:
        """Number and persist a finalized product list in one transaction."""
        if invoice_date is None:
            invoice_date = datetime.now(timezone.utc)
        if customer is not None and customer.is_empty():
            customer = None

        with self._write_transaction() as conn:
            invoice_id, invoice_number = self._insert_numbered(
                conn, invoice_date, currency, customer
            )
            conn.executemany(
                "INSERT INTO invoice_items (invoice_id, position, name, qty, rate) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (invoice_id, position, product.name, product.qty, str(product.rate))
                    for position, product in enumerate(products)
                ],
            )

        invoice = Invoice(
            number=invoice_number,
            date=invoice_date,
            products=tuple(products),
            currency=currency,
            customer=customer,
        )
        logger.info(
            "invoice_created",
            invoice_number=invoice_number,
            items=len(products),
            grand_total=str(invoice.totals.grand_total),
        )
        return invoice

    def _load_products(self, conn: sqlite3.Connection, invoice_id: int) -> Tuple[PricedLineItem, ...]:
        rows = conn.execute(
            "SELECT name, qty, rate FROM invoice_items WHERE invoice_id = ? ORDER BY position",
            (invoice_id,),
        ).fetchall()
        # total and tax are recomputed from qty and rate, never stored.
        return tuple(PricedLineItem(name=name, qty=int(qty), rate=Decimal(rate)) for name, qty, rate in rows)

    def _row_to_invoice(self, conn: sqlite3.Connection, row: Tuple) -> Invoice:
        invoice_id, number, invoice_date, currency, customer_name, customer_email = row
        customer = None
        if customer_name or customer_email:
            customer = Customer(name=customer_name or "", email=customer_email or "")
        return Invoice(
            number=number,
            date=dateutil_parser.isoparse(invoice_date),
            products=self._load_products(conn, invoice_id),
            currency=currency,
            customer=customer,
        )

    def get_invoice(self, invoice_number: str) -> Optional[Invoice]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, invoice_number, invoice_date, currency, customer_name, customer_email "
                "FROM invoices WHERE invoice_number = ?",
                (invoice_number,),
            ).fetchone()
            return self._row_to_invoice(conn, row) if row else None

    def list_invoices(self, limit: Optional[int] = None, offset: int = 0) -> List[Invoice]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT id, invoice_number, invoice_date, currency, customer_name, customer_email "
                "FROM invoices ORDER BY id DESC LIMIT ? OFFSET ?",
                (-1 if limit is None else limit, offset),
            ).fetchall()
            return [self._row_to_invoice(conn, row) for row in rows]

    def count_invoices(self) -> int:
        with self._connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM invoices").fetchone()[0])
