import json

import pytest

from controlling_core import __version__
from controlling_core.cli import main

HEADER = "posting_date,account,amount,account_name,cost_center,text\n"


def _write(path, rows: str):
    path.write_text(HEADER + rows, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Empty working directory, so no local config file is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_version(capsys) -> None:
    main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_compare_two_files(workspace, capsys) -> None:
    prev = _write(workspace / "prev.csv", "2024-03-01,6300,10000,Rent,ADM,Rent\n")
    curr = _write(workspace / "curr.csv", "2025-03-01,6300,30000,Rent,ADM,Rent\n")

    main(["compare", "--prev", str(prev), "--curr", str(curr)])

    data = json.loads(capsys.readouterr().out)
    assert data["by_account"][0]["account"] == 6300
    assert data["by_account"][0]["delta_abs"] == 20000.0


def test_compare_single_file_with_year_and_override(workspace, capsys) -> None:
    tx = _write(
        workspace / "tx.csv",
        "2024-03-01,6300,10000,Rent,ADM,Rent\n"
        "2025-03-01,6300,11000,Rent,ADM,Rent\n",
    )

    main(["--materiality-abs", "500", "compare", "--transactions", str(tx), "--year", "2025"])

    data = json.loads(capsys.readouterr().out)
    assert data["meta"]["materiality_abs"] == 500.0
    assert data["meta"]["bookings_prev"] == 1
    assert data["by_account"][0]["delta_abs"] == 1000.0


def test_triple_writes_output_file(workspace, capsys) -> None:
    vj = _write(workspace / "vj.csv", "2024-03-01,6300,20000,Rent,ADM,Rent\n")
    ist = _write(workspace / "ist.csv", "2025-03-01,6300,30000,Rent,ADM,Rent\n")
    plan = workspace / "plan.csv"
    plan.write_text("Konto;Bezeichnung;Plan\n6300;Rent;22000\n", encoding="utf-8")
    out = workspace / "result.json"

    main(["--output", str(out), "triple", "--vj", str(vj), "--plan", str(plan), "--ist", str(ist)])

    assert "Result written to" in capsys.readouterr().out
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["by_account"][0]["status"] == "critical"
    assert data["by_account"][0]["amount_plan"] == 22000.0


def test_triple_with_empty_plan_keeps_stdout_json(workspace, capsys) -> None:
    vj = _write(workspace / "vj.csv", "2024-03-01,6300,20000,Rent,ADM,Rent\n")
    ist = _write(workspace / "ist.csv", "2025-03-01,6300,30000,Rent,ADM,Rent\n")
    plan = workspace / "plan.csv"
    plan.write_text("", encoding="utf-8")

    main(["triple", "--vj", str(vj), "--plan", str(plan), "--ist", str(ist)])

    out, err = capsys.readouterr()
    data = json.loads(out)
    assert data["by_account"][0]["amount_plan"] == 20000.0
    assert "Warning: plan table is empty" in err


def test_contribution_with_dimension_and_range(workspace, capsys) -> None:
    tx = _write(
        workspace / "tx.csv",
        "2025-01-10,8400,1000,Sales,ADM,Invoice\n"
        "2025-01-20,3400,-400,Material,ADM,Goods\n"
        "2025-06-01,8400,9999,Sales,ADM,Invoice\n",
    )

    main([
        "contribution", "--transactions", str(tx),
        "--dimension", "cost_center", "--from", "2025-01-01", "--to", "2025-01-31",
    ])

    data = json.loads(capsys.readouterr().out)
    assert data["totals"]["revenue"] == 1000.0
    assert data["totals"]["db1"] == 600.0
    assert data["meta"]["dimension"] == "cost_center"
    assert data["by_dimension"][0]["key"] == "ADM"


def test_root_cause_for_accounts(workspace, capsys) -> None:
    tx = _write(
        workspace / "tx.csv",
        "2024-06-15,6500,1000,Travel,ADM,Hotel stay Berlin\n"
        "2025-06-15,6500,1000,Travel,ADM,Hotel stay Berlin\n"
        "2025-06-20,6500,5000,Travel,ADM,Emergency flight booking\n",
    )

    main(["root-cause", "--transactions", str(tx), "--year", "2025", "--account", "6500"])

    data = json.loads(capsys.readouterr().out)
    assert data[0]["account"] == 6500
    assert data[0]["total_variance"] == 5000.0
    assert data[0]["clusters"][0]["cluster_type"] == "one_time"


def test_invalid_transactions_exit_with_message(workspace) -> None:
    bad = workspace / "bad.csv"
    bad.write_text("date,account,amount\n2025-01-01,6300,1\n", encoding="utf-8")

    with pytest.raises(SystemExit, match="Invalid transactions structure"):
        main(["contribution", "--transactions", str(bad)])


def test_missing_input_file(workspace) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["contribution", "--transactions", str(workspace / "missing.csv")])
    assert exc_info.value.code == 2
