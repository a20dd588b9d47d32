from datetime import date

import pytest

from controlling_core.io import parse_plan_table, read_plan_table, read_transactions


def test_read_transactions_amount_format(tmp_path) -> None:
    path = tmp_path / "tx.csv"
    path.write_text(
        "posting_date,Account,amount,Account_Name,cost_center,vendor,text\n"
        "2025-01-15,6300,-1200.50,Rent,ADM,LandlordCo,January rent\n"
        "2025-02-01,8400,5000,Sales,,,\n",
        encoding="utf-8",
    )

    txs = read_transactions(path)

    assert len(txs) == 2
    rent, sales = txs
    assert rent.posting_date == date(2025, 1, 15)
    assert rent.amount == pytest.approx(-1200.50)
    assert rent.account == 6300
    assert rent.account_name == "Rent"
    assert rent.cost_center == "ADM"
    assert rent.vendor == "LandlordCo"
    assert rent.text == "January rent"
    assert sales.cost_center is None
    assert sales.vendor is None
    assert sales.text == ""
    assert sales.profit_center is None


def test_read_transactions_debit_credit_format(tmp_path) -> None:
    path = tmp_path / "tx.csv"
    path.write_text(
        "posting_date,account,debit,credit\n"
        "2025-01-15,6300,100,\n"
        "2025-01-16,8400,,250\n",
        encoding="utf-8",
    )

    txs = read_transactions(path)

    assert [t.amount for t in txs] == [-100.0, 250.0]


@pytest.mark.parametrize(
    "content, match",
    [
        ("date,account,amount\n2025-01-01,6300,1\n", "Invalid transactions structure"),
        ("posting_date,account,amount\n2025-01-01,6300,abc\n", "amount"),
        ("posting_date,account,amount\nnot-a-date,6300,1\n", "posting_date"),
        ("posting_date,account,amount\n2025-01-05,6300,1\n,6300,2\n", "posting_date"),
        ("posting_date,account,amount\n2025-01-01,rent,1\n", "account"),
        ("posting_date,account,debit,credit\n2025-01-01,6300,x,1\n", "debit"),
    ],
)
def test_read_transactions_invalid_input(tmp_path, content: str, match: str) -> None:
    path = tmp_path / "tx.csv"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=match):
        read_transactions(path)


def test_plan_table_with_english_header() -> None:
    entries = parse_plan_table("Account,Name,Amount\n6300,Rent,22000\n8400,Sales,-100000\n")

    assert [(e.account, e.account_name, e.amount) for e in entries] == [
        (6300, "Rent", 22000.0),
        (8400, "Sales", -100000.0),
    ]


def test_plan_table_with_german_header_and_semicolons() -> None:
    text = "Kontonr;Bezeichnung;Planbetrag\n6300;Miete;22000 €\n6800 Büro;;4500\n"

    entries = parse_plan_table(text)

    assert [(e.account, e.account_name, e.amount) for e in entries] == [
        (6300, "Miete", 22000.0),
        (6800, "Account 6800", 4500.0),
    ]


def test_plan_table_skips_unparseable_rows() -> None:
    entries = parse_plan_table("Konto;Betrag\n6300;abc\nx;100\n6400;1000\n")

    assert [(e.account, e.account_name, e.amount) for e in entries] == [
        (6400, "Account 6400", 1000.0),
    ]


def test_plan_table_headerless_fallback_reads_first_line() -> None:
    entries = parse_plan_table("6300,Rent,22000\n6800,5000\nfoo,bar,baz\n")

    assert [(e.account, e.account_name, e.amount) for e in entries] == [
        (6300, "Rent", 22000.0),
        (6800, "Account 6800", 5000.0),
    ]


def test_plan_table_rows_of_different_widths() -> None:
    entries = parse_plan_table("4000,1000\n6300,Miete,2000\n6800,500\n")

    assert [(e.account, e.account_name, e.amount) for e in entries] == [
        (4000, "Account 4000", 1000.0),
        (6300, "Miete", 2000.0),
        (6800, "Account 6800", 500.0),
    ]


@pytest.mark.parametrize("text", ["", "   \n  ", "Account;Amount\n"])
def test_plan_table_empty_input(text: str) -> None:
    assert parse_plan_table(text) == []


def test_read_plan_table_handles_bom(tmp_path) -> None:
    path = tmp_path / "plan.csv"
    path.write_text("Konto;Name;Budget\n6300;Miete;22000\n", encoding="utf-8-sig")

    entries = read_plan_table(path)

    assert len(entries) == 1
    assert entries[0].account == 6300
    assert entries[0].amount == 22000.0
