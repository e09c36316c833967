from datetime import date
from decimal import Decimal

import pytest

from exceptions import AuthorizationError, NotFoundError, ValidationError
from models import Category, Expense


def valid_fields(**overrides):
    fields = {
        "description": "Groceries run",
        "amount": "42.10",
        "date": date(2024, 3, 10),
        "category": Category.GROCERIES,
        "notes": "",
    }
    fields.update(overrides)
    return fields


def test_create_expense_cleans_input(services, user):
    expense = services.expenses.create_expense(user, **valid_fields(
        description="  Groceries run ", date="2024-03-10", category="GROCERIES"))
    assert expense.description == "Groceries run"
    assert expense.amount == Decimal("42.10")
    assert expense.date == date(2024, 3, 10)
    assert expense.category is Category.GROCERIES
    assert expense.notes is None


@pytest.mark.parametrize("overrides, field", [
    ({"amount": "0"}, "amount"),
    ({"amount": "-3"}, "amount"),
    ({"amount": "twelve"}, "amount"),
    ({"amount": "Infinity"}, "amount"),
    ({"amount": "-Infinity"}, "amount"),
    ({"amount": "NaN"}, "amount"),
    ({"amount": "sNaN"}, "amount"),
    ({"amount": "1e20"}, "amount"),
    ({"amount": "100000000"}, "amount"),
    ({"amount": float("inf")}, "amount"),
    ({"description": ""}, "description"),
    ({"description": "x" * 256}, "description"),
    ({"category": "SNACKS"}, "category"),
    ({"date": "2024-13-01"}, "date"),
    ({"date": None}, "date"),
    ({"notes": "n" * 501}, "notes"),
])
def test_invalid_expense_is_rejected_before_writing(services, user, overrides, field):
    with pytest.raises(ValidationError) as excinfo:
        services.expenses.create_expense(user, **valid_fields(**overrides))
    assert field in excinfo.value.errors
    assert Expense.query.count() == 0


def test_update_keeps_untouched_fields(services, user):
    expense = services.expenses.create_expense(user, **valid_fields(notes="weekly"))
    updated = services.expenses.update_expense(expense.id, user, category=Category.FOOD)
    assert updated.category is Category.FOOD
    assert updated.amount == Decimal("42.10")
    assert updated.notes == "weekly"


def test_invalid_update_leaves_expense_alone(services, user):
    expense = services.expenses.create_expense(user, **valid_fields())
    with pytest.raises(ValidationError):
        services.expenses.update_expense(expense.id, user, amount="0")
    assert services.expenses.get_expense(expense.id, user).amount == Decimal("42.10")


def test_only_the_owner_may_change_an_expense(services, make_user):
    owner, stranger = make_user(), make_user()
    expense = services.expenses.create_expense(owner, **valid_fields())

    with pytest.raises(AuthorizationError):
        services.expenses.update_expense(expense.id, stranger, amount="1")
    with pytest.raises(AuthorizationError):
        services.expenses.delete_expense(expense.id, stranger)
    with pytest.raises(NotFoundError):
        services.expenses.delete_expense(12345, owner)

    services.expenses.delete_expense(expense.id, owner)
    assert Expense.query.count() == 0


def test_list_expenses_filters(services, user):
    for day, category in ((1, Category.FOOD), (5, Category.RENT), (20, Category.FOOD)):
        services.expenses.create_expense(user, **valid_fields(date=date(2024, 3, day), category=category))

    listed = services.expenses.list_expenses(user, start=date(2024, 3, 2), category=Category.FOOD)
    assert [e.date.day for e in listed] == [20]
    assert len(services.expenses.list_expenses(user)) == 3


def test_largest_amount_fits_the_column(services, user):
    expense = services.expenses.create_expense(user, **valid_fields(amount="99999999.99"))
    assert expense.amount == Decimal("99999999.99")


def test_non_finite_edit_leaves_budget_alone(services, user):
    budget = services.budgets.save_budget(user, 2024, 3, "100")
    expense = services.expenses.create_expense(user, **valid_fields())
    with pytest.raises(ValidationError):
        services.expenses.update_expense(expense.id, user, amount="Infinity")
    assert budget.spent_amount == Decimal("42.10")
