import logging
from datetime import datetime, timedelta

from sqlalchemy import case, exists, select, true
from sqlalchemy.exc import IntegrityError

import aggregation
from exceptions import AuthorizationError, NotFoundError
from models import db, Badge, BadgeLevel, BadgeType, Budget, Category, Expense, User

logger = logging.getLogger(__name__)

EXPENSE_TRACKER_MIN_EXPENSES = 50
MONTHLY_PLANNER_MIN_BUDGETS = 6
CONSISTENT_SAVER_MONTHS = 3
STREAK_DAYS = 7
EARLY_BIRD_DAYS = 7

# Types covered by the six-hourly sweep
BULK_BADGES = (
    BadgeType.BUDGET_HERO,
    BadgeType.CONSISTENT_SAVER,
    BadgeType.EXPENSE_TRACKER,
    BadgeType.CATEGORY_MASTER,
    BadgeType.MONTHLY_PLANNER,
    BadgeType.SAVINGS_CHAMPION,
)
# Types covered by the daily sweep
DAILY_BADGES = (
    BadgeType.SPENDING_STREAK_MAINTAINER,
    BadgeType.EARLY_BIRD,
)


def points_expression():
    return case(
        *[(Badge.badge_type == badge_type, badge_type.points) for badge_type in BadgeType],
        else_=0,
    )


class BadgeService:
    def __init__(self, notifier, budgets, clock=datetime.now):
        self.notifier = notifier
        self.budgets = budgets
        self.clock = clock
        self.rules = {
            BadgeType.BUDGET_HERO: self.is_budget_hero,
            BadgeType.CONSISTENT_SAVER: self.is_consistent_saver,
            BadgeType.SPENDING_STREAK_MAINTAINER: self.is_streak_maintainer,
            BadgeType.EXPENSE_TRACKER: self.is_expense_tracker,
            BadgeType.CATEGORY_MASTER: self.is_category_master,
            BadgeType.MONTHLY_PLANNER: self.is_monthly_planner,
            BadgeType.SAVINGS_CHAMPION: self.is_savings_champion,
            BadgeType.EARLY_BIRD: self.is_early_bird,
        }

    def today(self):
        return self.clock().date()

    # Predicates

    def _current_percentage(self, user):
        budget = self.budgets.get_current_month_budget(user)
        return budget.spent_percentage if budget is not None else None

    def is_budget_hero(self, user):
        percentage = self._current_percentage(user)
        return percentage is not None and 0 < percentage < 80

    def is_savings_champion(self, user):
        percentage = self._current_percentage(user)
        return percentage is not None and 0 < percentage <= 50

    def is_consistent_saver(self, user):
        recent = self.budgets.recent_budgets(user, CONSISTENT_SAVER_MONTHS)
        return len(recent) == CONSISTENT_SAVER_MONTHS and not any(b.is_over_budget for b in recent)

    def is_streak_maintainer(self, user):
        today = self.today()
        start = today - timedelta(days=STREAK_DAYS - 1)
        return aggregation.distinct_expense_days(user, start, today) >= STREAK_DAYS

    def is_expense_tracker(self, user):
        return aggregation.expense_count(user) >= EXPENSE_TRACKER_MIN_EXPENSES

    def is_category_master(self, user):
        return len(aggregation.distinct_categories(user)) >= len(Category)

    def is_monthly_planner(self, user):
        return aggregation.budget_count(user) >= MONTHLY_PLANNER_MIN_BUDGETS

    def is_early_bird(self, user):
        joined_recently = user.created_at > self.clock() - timedelta(days=EARLY_BIRD_DAYS)
        return joined_recently and aggregation.expense_count(user) > 0

    # Bulk eligibility

    def _lacks_active(self, badge_type):
        return ~exists().where(
            Badge.user_id == User.id,
            Badge.badge_type == badge_type,
            Badge.active == true(),
        )

    def _current_budget_users(self, *criteria):
        today = self.today()
        return select(Budget.user_id).where(
            Budget.year == today.year,
            Budget.month == today.month,
            Budget.amount > 0,
            Budget.spent_amount > 0,
            *criteria,
        )

    def _candidate_user_ids(self, badge_type):
        if badge_type is BadgeType.BUDGET_HERO:
            return self._current_budget_users(Budget.spent_amount * 100 < Budget.amount * 80)
        if badge_type is BadgeType.SAVINGS_CHAMPION:
            return self._current_budget_users(Budget.spent_amount * 100 <= Budget.amount * 50)
        if badge_type is BadgeType.CONSISTENT_SAVER:
            return select(Budget.user_id).where(Budget.spent_amount <= Budget.amount)\
                .group_by(Budget.user_id).having(db.func.count(Budget.id) >= CONSISTENT_SAVER_MONTHS)
        if badge_type is BadgeType.EXPENSE_TRACKER:
            return select(Expense.user_id).group_by(Expense.user_id)\
                .having(db.func.count(Expense.id) >= EXPENSE_TRACKER_MIN_EXPENSES)
        if badge_type is BadgeType.CATEGORY_MASTER:
            return select(Expense.user_id).group_by(Expense.user_id)\
                .having(db.func.count(db.distinct(Expense.category)) >= len(Category))
        if badge_type is BadgeType.MONTHLY_PLANNER:
            return select(Budget.user_id).group_by(Budget.user_id)\
                .having(db.func.count(Budget.id) >= MONTHLY_PLANNER_MIN_BUDGETS)
        if badge_type is BadgeType.SPENDING_STREAK_MAINTAINER:
            today = self.today()
            return select(Expense.user_id)\
                .where(Expense.date >= today - timedelta(days=STREAK_DAYS - 1), Expense.date <= today)\
                .group_by(Expense.user_id)\
                .having(db.func.count(db.distinct(Expense.date)) >= STREAK_DAYS)
        if badge_type is BadgeType.EARLY_BIRD:
            return select(Expense.user_id)
        raise ValueError(f"No eligibility query for {badge_type}")

    def eligible_users(self, badge_type):
        criteria = [User.id.in_(self._candidate_user_ids(badge_type)), self._lacks_active(badge_type)]
        if badge_type is BadgeType.EARLY_BIRD:
            criteria.append(User.created_at > self.clock() - timedelta(days=EARLY_BIRD_DAYS))
        users = User.query.filter(*criteria).order_by(User.id).all()
        if badge_type is BadgeType.CONSISTENT_SAVER:
            # the count query over-selects; the predicate looks at the latest budgets only
            users = [user for user in users if self.is_consistent_saver(user)]
        return users

    # Awarding

    def find_active_badge(self, user, badge_type):
        return Badge.query.filter_by(user_id=user.id, badge_type=badge_type, active=True).first()

    def has_badge(self, user, badge_type):
        return self.find_active_badge(user, badge_type) is not None

    def award_badge(self, user, badge_type):
        if self.has_badge(user, badge_type):
            return None
        streak = aggregation.expense_streak(user, self.today()) \
            if badge_type is BadgeType.SPENDING_STREAK_MAINTAINER else 0
        badge = Badge(user_id=user.id, badge_type=badge_type, earned_at=self.clock(),
                      active=True, streak_count=streak)
        db.session.add(badge)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.debug("%s already awarded to user %s", badge_type.name, user.id)
            return None
        logger.info("Awarded %s to user %s", badge_type.name, user.id)
        self.notifier.send_badge_awarded(user, badge)
        return badge

    def check_and_award_badges(self, user):
        awarded = []
        for badge_type, rule in self.rules.items():
            if self.has_badge(user, badge_type) or not rule(user):
                continue
            badge = self.award_badge(user, badge_type)
            if badge is not None:
                awarded.append(badge)
        return awarded

    def _process(self, badge_types):
        awarded = 0
        for badge_type in badge_types:
            for user in self.eligible_users(badge_type):
                if self.award_badge(user, badge_type) is not None:
                    awarded += 1
        return awarded

    def process_all_eligible_badges(self):
        return self._process(BULK_BADGES)

    def process_daily_badges(self):
        return self._process(DAILY_BADGES)

    def deactivate_badge(self, badge_id, user):
        badge = db.session.get(Badge, badge_id)
        if badge is None:
            raise NotFoundError("Badge", badge_id)
        if badge.user_id != user.id:
            raise AuthorizationError("Badge", badge_id, user.id)
        badge.active = False
        db.session.commit()
        logger.info("Deactivated badge %s of user %s", badge_id, user.id)
        return badge

    # Points and ranking

    def list_badges(self, user, active_only=False):
        query = Badge.query.filter_by(user_id=user.id)
        if active_only:
            query = query.filter_by(active=True)
        return query.order_by(Badge.earned_at.desc(), Badge.id.desc()).all()

    def recent_badges(self, user, days=30):
        since = self.clock() - timedelta(days=days)
        return Badge.query.filter(Badge.user_id == user.id, Badge.earned_at >= since)\
            .order_by(Badge.earned_at.desc()).all()

    def get_total_points(self, user):
        total = db.session.query(db.func.coalesce(db.func.sum(points_expression()), 0))\
            .filter(Badge.user_id == user.id, Badge.active == true()).scalar()
        return int(total or 0)

    def _points_by_user(self):
        return select(Badge.user_id.label("user_id"), db.func.sum(points_expression()).label("points"))\
            .where(Badge.active == true())\
            .group_by(Badge.user_id).subquery()

    def get_user_rank(self, user):
        points = self.get_total_points(user)
        totals = self._points_by_user()
        higher = db.session.query(db.func.count(totals.c.user_id))\
            .filter(totals.c.user_id != user.id, totals.c.points > points).scalar()
        return (higher or 0) + 1

    def get_user_badge_level(self, user):
        return BadgeLevel.for_points(self.get_total_points(user))

    def leaderboard(self, limit=10):
        """Top users as ``(user, points, rank)``; tied users share a rank."""
        totals = self._points_by_user()
        rows = db.session.query(User, totals.c.points)\
            .join(totals, totals.c.user_id == User.id)\
            .order_by(totals.c.points.desc(), User.id).limit(limit).all()
        board = []
        for position, (user, points) in enumerate(rows, start=1):
            if board and board[-1][1] == points:
                rank = board[-1][2]
            else:
                rank = position
            board.append((user, int(points), rank))
        return board

    def badge_distribution(self):
        rows = db.session.query(Badge.badge_type, db.func.count(Badge.id))\
            .filter(Badge.active == true()).group_by(Badge.badge_type).all()
        return {badge_type: count for badge_type, count in rows}

    def badge_stats(self, user):
        points = self.get_total_points(user)
        return {
            "total_badges": len(self.list_badges(user, active_only=True)),
            "total_points": points,
            "rank": self.get_user_rank(user),
            "level": BadgeLevel.for_points(points),
            "recent_badges": len(self.recent_badges(user, 30)),
        }
