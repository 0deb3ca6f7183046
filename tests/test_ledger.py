import pytest

from domain.currency import Settings
from domain.debts import Debt
from domain.goals import Goal
from domain.ledger import calculate_balance, operation_delta, summarize_operations
from domain.operations import Operation

SETTINGS = Settings(base_currency="USD", rates={"USD": 1.0, "EUR": 1.1})


def _op(type_, amount, currency="USD", category="misc", wallet="Cash", source=None):
    return Operation(
        type=type_,
        amount=amount,
        currency=currency,
        category=category,
        wallet=wallet,
        source=source,
    )


def test_income_minus_converted_expense():
    operations = [_op("income", 100), _op("expense", 20, currency="EUR", category="food")]
    assert summarize_operations(operations, [], SETTINGS) == pytest.approx(78.0)


def test_goal_expense_is_excluded_case_insensitively():
    operations = [_op("income", 100), _op("expense", 40, category="  new ROOF ")]
    assert summarize_operations(operations, ["New roof"], SETTINGS) == 100


@pytest.mark.parametrize("saved", [0.01, 40, 1e6])
def test_goal_expense_amount_does_not_change_result(saved):
    goals = [Goal(title="Roof", target_amount=100)]
    base = [_op("income", 100), _op("expense", 20, currency="EUR", category="food")]
    with_small = base + [_op("expense", 5, category="roof")]
    with_other = base + [_op("expense", saved, currency="EUR", category=" ROOF ")]
    expected = summarize_operations(base, goals, SETTINGS)
    assert summarize_operations(with_small, goals, SETTINGS) == expected
    assert summarize_operations(with_other, goals, SETTINGS) == expected


def test_goal_income_is_not_excluded():
    operations = [_op("income", 100, category="New roof")]
    assert summarize_operations(operations, ["New roof"], SETTINGS) == 100


def test_debt_payment_is_credited_back():
    operation = _op("expense", 30, source="debt-payment:30|transfer:abc")
    delta = operation_delta(operation, frozenset(), SETTINGS)
    assert delta.base == 0
    assert delta.native == 0
    assert summarize_operations([operation], [], SETTINGS) == 0


def test_partial_debt_payment_in_foreign_currency():
    operation = _op("expense", 30, currency="EUR", source="debt-payment:10")
    assert summarize_operations([operation], [], SETTINGS) == pytest.approx(-22.0)


def test_malformed_payment_tag_is_ignored():
    operation = _op("expense", 30, source="debt-payment:oops")
    assert summarize_operations([operation], [], SETTINGS) == -30


def test_balance_summary_combines_operations_and_debts():
    operations = [_op("income", 100)]
    debts = [
        Debt(type="borrowed", amount=50, currency="USD", wallet="Cash"),
        Debt(type="lent", amount=20, currency="USD", wallet="Cash"),
        Debt(type="borrowed", amount=5, currency="USD", wallet="Cash", existing=True),
    ]
    summary = calculate_balance(operations, debts, [Goal(title="Roof", target_amount=10)], SETTINGS)
    assert summary.operations_balance == 100
    assert summary.balance == 130
    assert summary.borrowed == 55
    assert summary.lent == 20
    assert summary.net_balance == 130 - 55 + 20
    assert summary.to_dict()["debt_balance_effect"] == 30


def test_empty_inputs_give_zero():
    summary = calculate_balance([], [], [], SETTINGS)
    assert summary.balance == 0
    assert summary.net_balance == 0


def test_missing_settings_raise():
    with pytest.raises(ValueError):
        summarize_operations([_op("income", 1)], [], None)
