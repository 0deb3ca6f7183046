import pytest

from domain.currency import Settings
from domain.debts import (
    DEBT_BALANCE_SIGN,
    Debt,
    DebtStatus,
    DebtType,
    decode_debt_comment,
    summarize_debts,
)

SETTINGS = Settings(base_currency="USD", rates={"USD": 1.0, "EUR": 1.1})


def _debt(**overrides):
    data = {
        "type": "borrowed",
        "amount": 50,
        "currency": "USD",
        "wallet": "Cash",
        "counterpart": "Ivan",
    }
    data.update(overrides)
    return Debt(**data)


def test_open_borrowed_debt_increases_balance():
    summary = summarize_debts([_debt()], SETTINGS)
    assert summary.borrowed == 50
    assert summary.lent == 0
    assert summary.balance_effect == 50


def test_open_lent_debt_decreases_balance():
    summary = summarize_debts([_debt(type="lent")], SETTINGS)
    assert summary.borrowed == 0
    assert summary.lent == 50
    assert summary.balance_effect == -50


def test_existing_debt_counts_in_totals_only():
    summary = summarize_debts([_debt(existing=True)], SETTINGS)
    assert summary.borrowed == 50
    assert summary.balance_effect == 0


def test_closed_debts_are_ignored():
    summary = summarize_debts(
        [_debt(status="closed"), _debt(type="lent", status=DebtStatus.CLOSED)], SETTINGS
    )
    assert summary.borrowed == 0
    assert summary.lent == 0
    assert summary.balance_effect == 0


def test_debts_are_converted_to_base():
    summary = summarize_debts([_debt(amount=10, currency="EUR", type="lent")], SETTINGS)
    assert summary.lent == pytest.approx(11.0)
    assert summary.balance_effect == pytest.approx(-11.0)


def test_sign_table_covers_every_debt_type():
    assert set(DEBT_BALANCE_SIGN) == set(DebtType)
    assert DEBT_BALANCE_SIGN[DebtType.BORROWED] == 1.0
    assert DEBT_BALANCE_SIGN[DebtType.LENT] == -1.0


def test_existing_flag_only_accepts_true():
    assert _debt(existing="yes").existing is False
    assert _debt(existing=True).existing is True


def test_unknown_status_reads_as_open():
    assert _debt(status="weird").is_open


def test_decode_debt_comment_recovers_flag_and_note():
    assert decode_debt_comment('{"existing": true, "note": "old loan"}') == (True, "old loan")
    assert decode_debt_comment('{"existing": "true"}') == (False, None)
    assert decode_debt_comment("plain note") == (False, "plain note")
    assert decode_debt_comment(None) == (False, None)
    assert decode_debt_comment("[1, 2]") == (False, "[1, 2]")
