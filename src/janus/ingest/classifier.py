"""Map vendor operation labels onto ``TransactionType``."""

from __future__ import annotations

import re

from janus.db.models import AccountType, TransactionType
from janus.ingest.columns import ColumnMap
from janus.ingest.records import RawStatementRow
from janus.utils.logging import get_logger

logger = get_logger(__name__)

_IKE_RE = re.compile(r"\bIKE\b", re.IGNORECASE)
_IKZE_RE = re.compile(r"\bIKZE\b", re.IGNORECASE)

# XTB cash-operation labels, English and Polish exports
XTB_TYPE_LABELS = {
    "deposit": TransactionType.DEPOSIT,
    "ike deposit": TransactionType.DEPOSIT,
    "ikze deposit": TransactionType.DEPOSIT,
    "blik deposit": TransactionType.DEPOSIT,
    "transfer in": TransactionType.DEPOSIT,
    "wpłata": TransactionType.DEPOSIT,
    "withdrawal": TransactionType.WITHDRAWAL,
    "ike withdrawal": TransactionType.WITHDRAWAL,
    "ikze withdrawal": TransactionType.WITHDRAWAL,
    "transfer out": TransactionType.WITHDRAWAL,
    "wypłata": TransactionType.WITHDRAWAL,
    "stocks/etf purchase": TransactionType.BUY,
    "stock purchase": TransactionType.BUY,
    "zakup akcji/etf": TransactionType.BUY,
    "stocks/etf sale": TransactionType.SELL,
    "stock sale": TransactionType.SELL,
    "close trade": TransactionType.SELL,
    "sprzedaż akcji/etf": TransactionType.SELL,
    "dividend": TransactionType.DIVIDEND,
    "divident": TransactionType.DIVIDEND,
    "dywidenda": TransactionType.DIVIDEND,
    "withholding tax": TransactionType.TAX,
    "free-funds interest tax": TransactionType.TAX,
    "podatek od dywidend": TransactionType.TAX,
    "free-funds interest": TransactionType.INTEREST,
    "odsetki": TransactionType.INTEREST,
    "commission": TransactionType.COMMISSION,
    "sec fee": TransactionType.COMMISSION,
    "swap": TransactionType.COMMISSION,
    "prowizja": TransactionType.COMMISSION,
}

# Fallback substring rules, checked in order
_KEYWORD_RULES: list[tuple[tuple[str, ...], TransactionType]] = [
    (("tax", "podatek"), TransactionType.TAX),
    (("purchase", "buy", "zakup"), TransactionType.BUY),
    (("sale", "sell", "sprzedaż"), TransactionType.SELL),
    (("dividend", "divident", "dywidend"), TransactionType.DIVIDEND),
    (("interest", "odsetk"), TransactionType.INTEREST),
    (("withdrawal", "transfer out", "wypłat"), TransactionType.WITHDRAWAL),
    (("deposit", "blik", "transfer in", "wpłat"), TransactionType.DEPOSIT),
    (("fee", "commission", "charge", "prowizj"), TransactionType.COMMISSION),
]


def _normalize_label(label: object) -> str:
    return " ".join(str(label or "").strip().lower().split())


def classify_label(label: object) -> TransactionType:
    normalized = _normalize_label(label)
    if not normalized:
        return TransactionType.OTHER

    exact = XTB_TYPE_LABELS.get(normalized)
    if exact is not None:
        return exact

    for keywords, transaction_type in _KEYWORD_RULES:
        if any(keyword in normalized for keyword in keywords):
            return transaction_type

    logger.info("Unknown operation type %r, classified as other", label)
    return TransactionType.OTHER


def classify_row(row: RawStatementRow, columns: ColumnMap) -> TransactionType:
    return classify_label(row.cell(columns.get("type")))


def infer_account_type(comment: str | None) -> AccountType:
    """IKE/IKZE retirement accounts are only recognizable from the comment text."""
    text = comment or ""
    mentions_ike = _IKE_RE.search(text) is not None
    mentions_ikze = _IKZE_RE.search(text) is not None
    if mentions_ike and mentions_ikze:
        return AccountType.STANDARD
    if mentions_ikze:
        return AccountType.IKZE
    if mentions_ike:
        return AccountType.IKE
    return AccountType.STANDARD
