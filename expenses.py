import logging

from exceptions import AuthorizationError, NotFoundError
from forms import validate_expense
from models import db, Expense

logger = logging.getLogger(__name__)

EXPENSE_FIELDS = ("description", "amount", "date", "category", "notes")


class ExpenseService:
    def __init__(self, budgets, badges):
        self.budgets = budgets
        self.badges = badges

    def get_expense(self, expense_id, user):
        expense = db.session.get(Expense, expense_id)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        if expense.user_id != user.id:
            raise AuthorizationError("Expense", expense_id, user.id)
        return expense

    def list_expenses(self, user, start=None, end=None, category=None):
        query = Expense.query.filter_by(user_id=user.id)
        if start is not None:
            query = query.filter(Expense.date >= start)
        if end is not None:
            query = query.filter(Expense.date <= end)
        if category is not None:
            query = query.filter(Expense.category == category)
        return query.order_by(Expense.date.desc(), Expense.id.desc()).all()

    def create_expense(self, user, **fields):
        values = validate_expense(**fields)
        expense = Expense(user_id=user.id, **values)
        db.session.add(expense)
        db.session.commit()
        logger.debug("User %s logged expense %s", user.id, expense.id)
        self._after_change(user, {expense.year_month})
        return expense

    def update_expense(self, expense_id, user, **fields):
        expense = self.get_expense(expense_id, user)
        current = {name: getattr(expense, name) for name in EXPENSE_FIELDS}
        current.update(fields)
        values = validate_expense(**current)
        months = {expense.year_month}
        for name, value in values.items():
            setattr(expense, name, value)
        db.session.commit()
        months.add(expense.year_month)
        self._after_change(user, months)
        return expense

    def delete_expense(self, expense_id, user):
        expense = self.get_expense(expense_id, user)
        month = expense.year_month
        db.session.delete(expense)
        db.session.commit()
        self._after_change(user, {month})

    def _after_change(self, user, months):
        for year, month in sorted(months):
            if self.budgets.get_budget(user, year, month) is not None:
                self.budgets.recompute_spent(user, year, month)
        self.badges.check_and_award_badges(user)
