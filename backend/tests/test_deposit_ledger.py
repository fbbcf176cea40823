"""
Deposit ledger tests: posting rules, overdraw policy, reconciliation.
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy import text

from packloop.errors import InsufficientFunds, LedgerCorruption, NotFound, ValidationError
from packloop.models import DepositTransaction
from packloop.services import audit_service, ledger_service, loan_service

from conftest import T0


def account_of(customer):
    return ledger_service.lock_account_for_customer(customer.id)


def test_new_customer_has_zero_balance_account(make_customer):
    customer = make_customer(funded_cents=0)
    account = account_of(customer)
    assert account.balance_cents == 0
    assert ledger_service.account_statement(account.id) == []
    assert ledger_service.reconcile(account.id) == 0


def test_credit_and_debit_move_balance_and_append(make_customer):
    customer = make_customer(funded_cents=0)
    account_id = account_of(customer).id

    ledger_service.credit(account_id, 500, "adjustment", now=T0)
    ledger_service.debit(account_id, 200, "penalty", ref_table="inspections", ref_id=7, now=T0 + timedelta(minutes=1))

    assert ledger_service.get_account(account_id).balance_cents == 300
    rows = ledger_service.account_statement(account_id)
    assert [r["delta_cents"] for r in rows] == [500, -200]
    assert [r["running_balance_cents"] for r in rows] == [500, 300]
    assert rows[1]["ref_table"] == "inspections" and rows[1]["ref_id"] == 7
    assert ledger_service.reconcile(account_id) == 300


def test_statement_runs_in_posting_order_not_timestamp_order(make_customer):
    customer = make_customer(funded_cents=0)
    account_id = account_of(customer).id

    ledger_service.credit(account_id, 500, "adjustment", now=T0 + timedelta(days=30))
    ledger_service.debit(account_id, 200, "penalty", now=T0)

    rows = ledger_service.account_statement(account_id)
    assert [r["reason"] for r in rows] == ["adjustment", "penalty"]
    assert [r["running_balance_cents"] for r in rows] == [500, 300]


def test_statement_of_loan_funded_on_wall_clock(instance, retailer, make_customer):
    customer = make_customer(funded_cents=0)
    ledger_service.post_adjustment(customer.id, 500)
    checkout = loan_service.open_checkout(instance.id, retailer.id, customer.id, now=T0)
    loan_service.close_return(instance.id, retailer.location_id, now=T0 + timedelta(days=1))

    rows = ledger_service.account_statement(account_of(customer).id)
    assert [r["reason"] for r in rows] == ["adjustment", "checkout_hold", "return_release"]
    assert [r["running_balance_cents"] for r in rows] == [500, 350, 500]
    assert rows[1]["ref_id"] == checkout.id


@pytest.mark.parametrize("amount", [0, -5, 1.5, True, "100"])
def test_non_positive_or_non_integer_amounts_rejected(make_customer, amount):
    account_id = account_of(make_customer()).id
    with pytest.raises(ValidationError):
        ledger_service.credit(account_id, amount, "adjustment")


def test_unknown_reason_rejected(make_customer):
    account_id = account_of(make_customer()).id
    with pytest.raises(ValidationError):
        ledger_service.credit(account_id, 100, "gift")
    assert ledger_service.reconcile(account_id) == 1000


def test_checkout_hold_can_never_overdraw(make_customer, app, monkeypatch):
    monkeypatch.setitem(app.config, "NEGATIVE_BALANCE_REASONS", frozenset({"checkout_hold", "penalty"}))
    account_id = account_of(make_customer(funded_cents=100)).id

    with pytest.raises(InsufficientFunds) as exc_info:
        ledger_service.debit(account_id, 150, "checkout_hold")
    assert exc_info.value.status_code == 422

    assert ledger_service.get_account(account_id).balance_cents == 100
    assert len(ledger_service.account_statement(account_id)) == 1


def test_penalty_may_overdraw_by_default(make_customer):
    customer = make_customer(funded_cents=0)
    tx = ledger_service.assess_penalty(customer.id, 300, note="lost cup", now=T0)

    account = account_of(customer)
    assert tx.delta_cents == -300
    assert tx.reason == "penalty"
    assert account.balance_cents == -300
    assert ledger_service.reconcile(account.id) == -300

    trail = audit_service.audit_trail("customer", customer.id)
    assert [e.event_type for e in trail] == [audit_service.EVENT_PENALTY]
    assert trail[0].detail_json()["amount_cents"] == 300
    assert trail[0].detail_json()["note"] == "lost cup"


def test_penalty_overdraw_can_be_disabled(make_customer, app, monkeypatch):
    monkeypatch.setitem(app.config, "NEGATIVE_BALANCE_REASONS", frozenset())
    customer = make_customer(funded_cents=0)
    with pytest.raises(InsufficientFunds):
        ledger_service.assess_penalty(customer.id, 300)
    assert audit_service.audit_trail("customer", customer.id) == []


def test_post_adjustment_signed_and_audited(make_customer):
    customer = make_customer(funded_cents=0)
    ledger_service.post_adjustment(customer.id, 250, note="goodwill")
    ledger_service.post_adjustment(customer.id, -400, note="correction")

    account = account_of(customer)
    assert account.balance_cents == -150
    events = audit_service.audit_trail("customer", customer.id)
    assert [e.event_type for e in events] == ["ADJUST", "ADJUST"]
    assert [e.detail_json()["delta_cents"] for e in events] == [250, -400]


def test_post_adjustment_zero_rejected(customer):
    with pytest.raises(ValidationError):
        ledger_service.post_adjustment(customer.id, 0)


def test_penalty_for_unknown_customer(db_session):
    with pytest.raises(NotFound):
        ledger_service.assess_penalty(98765, 100)


def test_reconcile_detects_drift_and_logs_critical(customer, db_session, caplog):
    account_id = account_of(customer).id
    db_session.execute(
        text("UPDATE deposit_accounts SET balance_cents = balance_cents + 1 WHERE id = :id"),
        {"id": account_id},
    )
    db_session.commit()

    with caplog.at_level(logging.CRITICAL):
        with pytest.raises(LedgerCorruption) as exc_info:
            ledger_service.reconcile(account_id)

    err = exc_info.value
    assert err.balance_cents == 1001
    assert err.ledger_sum_cents == 1000
    assert err.status_code == 500
    assert any("LEDGER CORRUPTION" in r.getMessage() for r in caplog.records)


def test_reconcile_all_reports_only_drifted(make_customer, db_session):
    healthy = make_customer(name="Healthy")
    broken = make_customer(name="Broken")
    broken_account = account_of(broken).id
    db_session.execute(
        text("UPDATE deposit_accounts SET balance_cents = 0 WHERE id = :id"), {"id": broken_account}
    )
    db_session.commit()

    drifted = ledger_service.reconcile_all()
    assert drifted == [{"account_id": broken_account, "balance_cents": 0, "ledger_sum_cents": 1000}]
    assert ledger_service.reconcile(account_of(healthy).id) == 1000


def test_ledger_sum_matches_balance_after_mixed_sequence(make_customer):
    customer = make_customer(funded_cents=0)
    account_id = account_of(customer).id
    steps = [(500, "credit", "adjustment"), (120, "debit", "penalty"), (80, "credit", "return_release"),
             (900, "debit", "adjustment"), (15, "credit", "adjustment")]
    for amount, op, reason in steps:
        getattr(ledger_service, op)(account_id, amount, reason)

    account = ledger_service.get_account(account_id)
    assert account.balance_cents == 500 - 120 + 80 - 900 + 15
    assert ledger_service.reconcile(account_id) == account.balance_cents


def test_zero_delta_rejected_by_posting(customer):
    account = account_of(customer)
    with pytest.raises(ValidationError):
        ledger_service.post_transaction(account, 0, "adjustment")


def test_transactions_are_not_removed_by_balance_changes(customer, db_session):
    account_id = account_of(customer).id
    before = db_session.query(DepositTransaction).filter_by(account_id=account_id).count()
    ledger_service.debit(account_id, 10, "penalty")
    after = db_session.query(DepositTransaction).filter_by(account_id=account_id).count()
    assert after == before + 1
