"""
CLI command tests (flask ledger / flask loans).
"""

from datetime import timedelta

from sqlalchemy import text

from packloop.services import ledger_service, loan_service

from conftest import T0


def test_ledger_reconcile_passes_when_consistent(app, customer):
    result = app.test_cli_runner().invoke(args=["ledger", "reconcile"])
    assert result.exit_code == 0
    assert "PASS All deposit accounts reconcile." in result.output


def test_ledger_reconcile_fails_on_drift(app, customer, db_session):
    account_id = ledger_service.lock_account_for_customer(customer.id).id
    db_session.execute(text("UPDATE deposit_accounts SET balance_cents = 7 WHERE id = :id"), {"id": account_id})
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "reconcile"])
    assert result.exit_code == 1
    assert "FAIL 1 account(s) drifted:" in result.output
    assert "1000" in result.output


def test_ledger_statement(app, customer):
    account_id = ledger_service.lock_account_for_customer(customer.id).id
    result = app.test_cli_runner().invoke(args=["ledger", "statement", "--account-id", str(account_id)])
    assert result.exit_code == 0
    assert "adjustment" in result.output


def test_ledger_statement_unknown_account(app, db_session):
    result = app.test_cli_runner().invoke(args=["ledger", "statement", "--account-id", "999999"])
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "not found" in result.output
    assert "Traceback" not in result.output


def test_loans_overdue_listing(app, instance, retailer, customer):
    checkout = loan_service.open_checkout(instance.id, retailer.id, customer.id, due_back_days=7, now=T0)
    runner = app.test_cli_runner()

    quiet = runner.invoke(args=["loans", "overdue", "--as-of", "2026-03-05T00:00:00Z"])
    assert quiet.exit_code == 0
    assert "No overdue checkouts." in quiet.output

    as_of = (T0 + timedelta(days=10)).isoformat() + "Z"
    late = runner.invoke(args=["loans", "overdue", "--as-of", as_of])
    assert late.exit_code == 0
    line = [ln for ln in late.output.splitlines() if ln.startswith(str(checkout.id))][0]
    assert line.split()[-1] == "3"


def test_loans_overdue_bad_timestamp(app, db_session):
    result = app.test_cli_runner().invoke(args=["loans", "overdue", "--as-of", "soon"])
    assert result.exit_code == 2
