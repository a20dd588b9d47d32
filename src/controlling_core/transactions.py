# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Transaction records for Controlling Core.

This module defines the value objects every engine consumes:

- Transaction:    one normalized, immutable line item (booking).
- TopTransaction: a serializable excerpt of a Transaction, used as evidence
                  in deviation results and clusters.
- PlanEntry:      one row of a plan table (account -> planned amount).

It also provides the conversion between transaction sequences and pandas
DataFrames, which the aggregation layer uses for grouped sums.

Amount convention
-----------------
``amount`` is a signed number as delivered by the upstream normalizer. The
core never flips signs: signed sums are used for deviation analysis, and
unsigned magnitudes ("impact") for the contribution margin cascade.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pandas as pd

FRAME_COLUMNS: list[str] = [
    "posting_date",
    "amount",
    "account",
    "account_name",
    "cost_center",
    "profit_center",
    "document_no",
    "text",
    "vendor",
    "customer",
]


@dataclass(frozen=True)
class Transaction:
    """A single booking line.

    Attributes:
        posting_date: Posting date of the line.
        amount: Signed amount.
        account: General-ledger account number.
        account_name: Account label as delivered by the source system.
        cost_center: Optional cost center.
        profit_center: Optional profit center.
        document_no: Document number (not necessarily unique).
        text: Free-text booking description.
        vendor: Optional vendor (creditor).
        customer: Optional customer (debtor).
    """

    posting_date: date
    amount: float
    account: int
    account_name: str = ""
    cost_center: Optional[str] = None
    profit_center: Optional[str] = None
    document_no: str = ""
    text: str = ""
    vendor: Optional[str] = None
    customer: Optional[str] = None

    @property
    def counterparty(self) -> Optional[str]:
        """Vendor if present, otherwise customer, otherwise None."""
        return self.vendor or self.customer or None


@dataclass(frozen=True)
class TopTransaction:
    """Serializable excerpt of a Transaction used as evidence."""

    date: str
    amount: float
    document_no: str
    text: str
    vendor: Optional[str] = None
    customer: Optional[str] = None


@dataclass(frozen=True)
class PlanEntry:
    """Planned signed amount for one account."""

    account: int
    account_name: str
    amount: float


def to_top_transaction(tx: Transaction) -> TopTransaction:
    """Build the evidence excerpt of a transaction."""
    return TopTransaction(
        date=tx.posting_date.isoformat(),
        amount=tx.amount,
        document_no=tx.document_no,
        text=tx.text,
        vendor=tx.vendor,
        customer=tx.customer,
    )


def top_transactions(
    transactions: Iterable[Transaction],
    top_n: int = 5,
    account: Optional[int] = None,
    cost_center: Optional[str] = None,
) -> list[TopTransaction]:
    """Return the ``top_n`` transactions with the largest absolute amount.

    Args:
        transactions: Transactions to rank.
        top_n: Maximum number of items to return. Values <= 0 return [].
        account: Optional account filter.
        cost_center: Optional cost center filter.

    Returns:
        Excerpts sorted by descending absolute amount. Ties keep the input
        order (stable sort), so identical inputs yield identical output.
    """
    if top_n <= 0:
        return []
    selected = [
        t
        for t in transactions
        if (account is None or t.account == account)
        and (cost_center is None or t.cost_center == cost_center)
    ]
    selected.sort(key=lambda t: abs(t.amount), reverse=True)
    return [to_top_transaction(t) for t in selected[:top_n]]


def transactions_to_frame(transactions: Sequence[Transaction]) -> pd.DataFrame:
    """Convert transactions into a DataFrame with the FRAME_COLUMNS layout.

    An empty sequence yields an empty DataFrame that still carries all
    columns, so downstream ``groupby`` calls work unchanged.
    """
    if not transactions:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    rows = [
        {
            "posting_date": t.posting_date,
            "amount": float(t.amount),
            "account": int(t.account),
            "account_name": t.account_name,
            "cost_center": t.cost_center,
            "profit_center": t.profit_center,
            "document_no": t.document_no,
            "text": t.text,
            "vendor": t.vendor,
            "customer": t.customer,
        }
        for t in transactions
    ]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):  # type: ignore[arg-type]
            return None
    except (TypeError, ValueError):
        pass
    s = str(value).strip()
    return s or None


def transactions_from_frame(df: pd.DataFrame) -> list[Transaction]:
    """Build Transaction objects from a normalized DataFrame.

    The DataFrame must contain 'posting_date', 'amount' and 'account'.
    Other FRAME_COLUMNS are optional; missing or empty values become None
    (dimensions) or "" (texts).
    """
    out: list[Transaction] = []
    for row in df.to_dict(orient="records"):
        posting = row["posting_date"]
        if isinstance(posting, pd.Timestamp):
            posting = posting.date()
        out.append(
            Transaction(
                posting_date=posting,
                amount=float(row["amount"]),
                account=int(row["account"]),
                account_name=_optional_str(row.get("account_name")) or "",
                cost_center=_optional_str(row.get("cost_center")),
                profit_center=_optional_str(row.get("profit_center")),
                document_no=_optional_str(row.get("document_no")) or "",
                text=_optional_str(row.get("text")) or "",
                vendor=_optional_str(row.get("vendor")),
                customer=_optional_str(row.get("customer")),
            )
        )
    return out
