import pytest

from domain.currency import Settings
from domain.goals import (
    Goal,
    GoalStatus,
    build_goal_category_set,
    is_goal_expense,
    recalculate_goal_progress,
)
from domain.operations import Operation

SETTINGS = Settings(base_currency="USD", rates={"USD": 1.0, "EUR": 1.1})


def _expense(amount, category, currency="USD"):
    return Operation(
        type="expense", amount=amount, currency=currency, category=category, wallet="Cash"
    )


def test_goal_category_set_accepts_titles_and_goals():
    keys = build_goal_category_set([Goal(title=" Roof ", target_amount=1), "Bell", "", None])
    assert keys == frozenset({"roof", "bell"})


def test_is_goal_expense_only_for_expenses():
    keys = frozenset({"roof"})
    assert is_goal_expense(_expense(1, "ROOF"), keys)
    income = Operation(type="income", amount=1, currency="USD", category="roof", wallet="Cash")
    assert not is_goal_expense(income, keys)


def test_progress_sums_matching_expenses_in_base():
    goals = [Goal(title="Roof", target_amount=100), Goal(title="Bell", target_amount=10)]
    operations = [
        _expense(50, "roof"),
        _expense(20, "Roof", currency="EUR"),
        _expense(5, "food"),
    ]
    roof, bell = recalculate_goal_progress(goals, operations, SETTINGS)
    assert roof.current_amount == pytest.approx(72.0)
    assert roof.status is GoalStatus.ACTIVE
    assert bell.current_amount == 0
    assert roof.id == goals[0].id


def test_goal_is_done_when_target_reached():
    (goal,) = recalculate_goal_progress(
        [Goal(title="Bell", target_amount=10)], [_expense(10, "bell")], SETTINGS
    )
    assert goal.status is GoalStatus.DONE


def test_no_goals_gives_empty_list():
    assert recalculate_goal_progress([], [_expense(1, "x")], SETTINGS) == []
