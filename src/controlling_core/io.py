# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Controlling Core.

This module reads already-normalized transactions and plan tables from
delimited text files.

Transactions
------------
Column names are case-insensitive. Two formats are supported:

1) Signed amount format
       posting_date, account, amount [, optional columns]

2) Debit / credit format
       posting_date, account, debit, credit [, optional columns]

   The signed amount is computed as ``amount = credit - debit``.

Optional columns: account_name, cost_center, profit_center, document_no,
text, vendor, customer. Any other column is ignored.

If the structure does not match, or dates/amounts/accounts cannot be
parsed, a ValueError is raised.

Plan tables
-----------
Plan tables come from spreadsheets maintained by hand, so the parser is
lenient: ',' or ';' separated, header columns detected by substring
(German or English), a headerless "account, [name,] amount" fallback, and
rows that do not parse are skipped. It never raises for content.
"""

import io
import os
import re
from typing import Optional, Union

import pandas as pd

from .transactions import FRAME_COLUMNS, PlanEntry, Transaction, transactions_from_frame

_ACCOUNT_HEADERS = ("konto", "account", "kontonr")
_NAME_HEADERS = ("name", "bezeichnung")
_AMOUNT_HEADERS = ("betrag", "amount", "plan", "budget")

_SEPARATOR = re.compile(r"[,;]")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def read_transactions(path: Union[str, "os.PathLike[str]"]) -> list[Transaction]:
    """
    Read transactions from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file.

    Returns
    -------
    list[Transaction]
        One Transaction per row, in file order.

    Raises
    ------
    ValueError
        If required columns are missing or dates, amounts or accounts cannot
        be parsed.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    return transactions_from_frame(normalize_transactions_frame(df))


def normalize_transactions_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and normalize a raw transactions DataFrame.

    Returns a DataFrame with the FRAME_COLUMNS layout: parsed dates, float
    amounts, integer accounts and empty strings for missing optional text.
    """
    d = df.copy()
    d.columns = [str(c).lower().strip() for c in d.columns]
    cols = set(d.columns)

    if {"posting_date", "account", "amount"}.issubset(cols):
        d["amount"] = pd.to_numeric(d["amount"], errors="coerce")
        if d["amount"].isna().any():
            raise ValueError("Invalid numeric values in 'amount' column.")
    elif {"posting_date", "account", "debit", "credit"}.issubset(cols):
        for col in ("debit", "credit"):
            d[col] = pd.to_numeric(d[col].replace("", "0"), errors="coerce")
        if d[["debit", "credit"]].isna().any().any():
            raise ValueError("Invalid numeric values in 'debit'/'credit' columns.")
        d["amount"] = d["credit"] - d["debit"]
    else:
        raise ValueError(
            "Invalid transactions structure. Expected either:\n"
            "  - posting_date, account, amount\n"
            "  - posting_date, account, debit, credit\n"
            "(column names are case-insensitive)."
        )

    try:
        d["posting_date"] = pd.to_datetime(d["posting_date"], errors="raise")
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid values in 'posting_date' column.") from exc
    if d["posting_date"].isna().any():
        raise ValueError("Missing values in 'posting_date' column.")

    d["account"] = pd.to_numeric(d["account"], errors="coerce")
    if d["account"].isna().any():
        raise ValueError("Invalid values in 'account' column.")
    d["account"] = d["account"].astype(int)

    for col in FRAME_COLUMNS:
        if col not in d.columns:
            d[col] = ""

    return d[FRAME_COLUMNS].copy()


def _parse_amount(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    cleaned = _NON_NUMERIC.sub("", str(raw))
    try:
        return float(cleaned)
    except ValueError:
        return None


def _parse_account(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    match = _LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else None


def _find_column(headers: list[str], candidates: tuple[str, ...]) -> Optional[int]:
    for idx, header in enumerate(headers):
        if any(c in header for c in candidates):
            return idx
    return None


def _cell(row: list[Optional[str]], idx: Optional[int]) -> Optional[str]:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def parse_plan_table(text: str) -> list[PlanEntry]:
    """
    Parse a delimited plan table into PlanEntry objects.

    Header detection
    ----------------
    The first line is inspected for an account column (konto / account /
    kontonr), a name column (name / bezeichnung) and an amount column
    (betrag / amount / plan / budget). When account and amount columns are
    found, rows are read by column position.

    Fallback
    --------
    Otherwise every line is read as ``account, [name,] amount``: the first
    field is the account, the last one the amount and, with three or more
    fields, the second one the name.

    Rows without a numeric account or amount are skipped. Missing names
    become "Account <n>".
    """
    if not text or not text.strip():
        return []

    # Rows may differ in width: size the frame to the widest line
    content = text.strip()
    width = max(len(_SEPARATOR.split(line)) for line in content.splitlines())

    try:
        df = pd.read_csv(
            io.StringIO(content),
            sep=_SEPARATOR.pattern,
            engine="python",
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
        )
    except pd.errors.EmptyDataError:
        return []

    rows = [
        [v.strip() if isinstance(v, str) else None for v in r]
        for r in df.itertuples(index=False, name=None)
    ]
    if not rows:
        return []

    headers = [(h or "").lower() for h in rows[0]]
    account_idx = _find_column(headers, _ACCOUNT_HEADERS)
    name_idx = _find_column(headers, _NAME_HEADERS)
    amount_idx = _find_column(headers, _AMOUNT_HEADERS)

    entries: list[PlanEntry] = []
    if account_idx is not None and amount_idx is not None:
        for row in rows[1:]:
            account = _parse_account(_cell(row, account_idx))
            amount = _parse_amount(_cell(row, amount_idx))
            if account is None or amount is None:
                continue
            name = _cell(row, name_idx) or f"Account {account}"
            entries.append(PlanEntry(account=account, account_name=name, amount=amount))
        return entries

    for row in rows:
        values = [v for v in row if v is not None]
        while values and values[-1] == "":
            values.pop()
        if len(values) < 2:
            continue
        account = _parse_account(values[0])
        amount = _parse_amount(values[-1])
        if account is None or amount is None:
            continue
        name = values[1] if len(values) > 2 and values[1] else f"Account {account}"
        entries.append(PlanEntry(account=account, account_name=name, amount=amount))
    return entries


def read_plan_table(path: Union[str, "os.PathLike[str]"]) -> list[PlanEntry]:
    """Read a plan table file (UTF-8) and parse it with ``parse_plan_table``."""
    with open(path, encoding="utf-8-sig") as f:
        return parse_plan_table(f.read())
