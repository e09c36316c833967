import logging
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import false, select, update
from sqlalchemy.exc import IntegrityError

from aggregation import month_bounds
from exceptions import AuthorizationError, NotFoundError
from forms import validate_budget
from models import db, Budget, Expense, ZERO

logger = logging.getLogger(__name__)

ALERT_FLAGS = {
    80: Budget.alert_80_sent,
    100: Budget.alert_100_sent,
}


class AlertOutcome(NamedTuple):
    sent80: bool
    sent100: bool


class BudgetService:
    def __init__(self, notifier, clock=datetime.now):
        self.notifier = notifier
        self.clock = clock

    def today(self):
        return self.clock().date()

    # Lookups

    def get_budget(self, user, year, month):
        return Budget.query.filter_by(user_id=user.id, year=year, month=month).first()

    def get_current_month_budget(self, user):
        today = self.today()
        return self.get_budget(user, today.year, today.month)

    def list_budgets(self, user):
        return Budget.query.filter_by(user_id=user.id)\
            .order_by(Budget.year.desc(), Budget.month.desc()).all()

    def recent_budgets(self, user, limit):
        today = self.today()
        not_future = db.or_(
            Budget.year < today.year,
            db.and_(Budget.year == today.year, Budget.month <= today.month),
        )
        return Budget.query.filter(Budget.user_id == user.id, not_future)\
            .order_by(Budget.year.desc(), Budget.month.desc()).limit(limit).all()

    def _owned_budget(self, budget_id, user):
        budget = db.session.get(Budget, budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)
        if budget.user_id != user.id:
            raise AuthorizationError("Budget", budget_id, user.id)
        return budget

    # Mutations

    def save_budget(self, user, year, month, amount):
        year, month, amount = validate_budget(year, month, amount)
        budget = self.get_budget(user, year, month)
        if budget is None:
            db.session.add(Budget(user_id=user.id, year=year, month=month, amount=amount))
            try:
                db.session.commit()
            except IntegrityError:
                # created concurrently; treat as an update
                db.session.rollback()
                budget = self.get_budget(user, year, month)
        if budget is not None:
            budget.amount = amount
            db.session.commit()
        logger.info("Budget for user %s set to %s for %04d-%02d", user.id, amount, year, month)
        return self.recompute_spent(user, year, month)

    def delete_budget(self, budget_id, user):
        budget = self._owned_budget(budget_id, user)
        db.session.delete(budget)
        db.session.commit()

    def recompute_spent(self, user, year, month):
        budget = self.get_budget(user, year, month)
        if budget is None:
            raise NotFoundError("Budget", f"{year:04d}-{month:02d}")
        start, end = month_bounds(year, month)
        total = select(db.func.coalesce(db.func.sum(Expense.amount), 0))\
            .where(Expense.user_id == user.id, Expense.date >= start, Expense.date < end)\
            .scalar_subquery()
        db.session.execute(
            update(Budget)
            .where(Budget.id == budget.id)
            .values(spent_amount=total, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        self.evaluate_alerts(budget)
        return budget

    # Alerts

    def evaluate_alerts(self, budget):
        percentage = budget.spent_percentage
        sent80 = percentage >= 80 and not budget.alert_80_sent and self._fire_alert(budget, 80)
        sent100 = percentage >= 100 and not budget.alert_100_sent and self._fire_alert(budget, 100)
        return AlertOutcome(bool(sent80), bool(sent100))

    def _claim_alert(self, budget_id, threshold):
        flag = ALERT_FLAGS[threshold]
        result = db.session.execute(
            update(Budget)
            .where(Budget.id == budget_id, flag == false())
            .values({flag: True})
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount == 1

    def _fire_alert(self, budget, threshold):
        if not self._claim_alert(budget.id, threshold):
            return False
        logger.info("Budget %s crossed %d%% (%.1f%% spent)", budget.id, threshold, budget.spent_percentage)
        self.notifier.send_budget_threshold_alert(budget, threshold)
        return True

    def find_budgets_needing_alert(self, threshold):
        flag = ALERT_FLAGS[threshold]
        return Budget.query.filter(
            flag == false(),
            Budget.amount > 0,
            Budget.spent_amount * 100 >= Budget.amount * threshold,
        ).order_by(Budget.id).all()

    def find_budgets_needing_alert80(self):
        return self.find_budgets_needing_alert(80)

    def find_budgets_needing_alert100(self):
        return self.find_budgets_needing_alert(100)

    def process_pending_alerts(self):
        sent = 0
        for threshold in ALERT_FLAGS:
            for budget in self.find_budgets_needing_alert(threshold):
                if self._fire_alert(budget, threshold):
                    sent += 1
        return sent

    def reset_all_alert_flags(self):
        result = db.session.execute(
            update(Budget)
            .values(alert_80_sent=False, alert_100_sent=False)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.info("Reset alert flags on %d budgets", result.rowcount)
        return result.rowcount

    # Reporting

    def status(self, budget):
        return budget.status

    def budget_stats(self, user):
        budgets = self.list_budgets(user)
        current = self.get_current_month_budget(user)
        with_limit = [b for b in budgets if b.amount]
        return {
            "total_budgets": len(budgets),
            "average_budget": (sum((b.amount for b in budgets), ZERO) / len(budgets)) if budgets else ZERO,
            "average_spent_percentage": (
                float(sum(b.spent_percentage for b in with_limit) / len(with_limit)) if with_limit else 0.0),
            "within_budget": sum(1 for b in budgets if not b.is_over_budget),
            "current_status": current.status if current else None,
        }
