from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    COMMISSION = "commission"
    TAX = "tax"
    INTEREST = "interest"
    OTHER = "other"


OUTFLOW_TYPES = frozenset(
    {
        TransactionType.WITHDRAWAL,
        TransactionType.BUY,
        TransactionType.COMMISSION,
        TransactionType.TAX,
    }
)
TRADE_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL})
TICKER_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL, TransactionType.DIVIDEND})


class AccountType(str, Enum):
    STANDARD = "STANDARD"
    IKE = "IKE"
    IKZE = "IKZE"


MONEY = Numeric(18, 4)
QUANTITY = Numeric(20, 8)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_transactions_user_dedupe"),
        Index("ix_transactions_user_batch", "user_id", "import_batch_id"),
        Index("ix_transactions_user_date", "user_id", "transaction_date", "id"),
        Index("ix_transactions_user_ticker_date", "user_id", "ticker", "transaction_date"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SqlEnum(TransactionType, native_enum=False), nullable=False, index=True
    )
    account_type: Mapped[AccountType] = mapped_column(
        SqlEnum(AccountType, native_enum=False), nullable=False, default=AccountType.STANDARD
    )
    ticker: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    quantity: Mapped[Decimal | None] = mapped_column(QUANTITY, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    commission: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    imported_from_file: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    import_batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dedupe_key: Mapped[str | None] = mapped_column(String(96), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )


class PriceCache(Base):
    __tablename__ = "price_cache"
    __table_args__ = (
        UniqueConstraint("symbol", "as_of", "interval", name="uq_price_cache_symbol_asof"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    as_of: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    interval: Mapped[str] = mapped_column(String(16), nullable=False, default="1d")
    open: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    high: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    low: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    close: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    volume: Mapped[int | None] = mapped_column(nullable=True)
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cached_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
