import enum
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import NamedTuple

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import true

db = SQLAlchemy()

ZERO = Decimal("0.00")


class Category(enum.Enum):
    FOOD = "FOOD"
    TRAVEL = "TRAVEL"
    RENT = "RENT"
    UTILITIES = "UTILITIES"
    ENTERTAINMENT = "ENTERTAINMENT"
    HEALTHCARE = "HEALTHCARE"
    SHOPPING = "SHOPPING"
    EDUCATION = "EDUCATION"
    GROCERIES = "GROCERIES"
    INSURANCE = "INSURANCE"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"

    @property
    def info(self):
        return CATEGORY_INFO[self]


class CategoryInfo(NamedTuple):
    display_name: str
    icon: str
    color: str


CATEGORY_INFO = MappingProxyType({
    Category.FOOD: CategoryInfo("Food & Dining", "🍽️", "#FF6B6B"),
    Category.TRAVEL: CategoryInfo("Travel & Transport", "🚗", "#4ECDC4"),
    Category.RENT: CategoryInfo("Rent & Housing", "🏠", "#45B7D1"),
    Category.UTILITIES: CategoryInfo("Utilities", "⚡", "#96CEB4"),
    Category.ENTERTAINMENT: CategoryInfo("Entertainment", "🎬", "#FFEAA7"),
    Category.HEALTHCARE: CategoryInfo("Healthcare", "🏥", "#DDA0DD"),
    Category.SHOPPING: CategoryInfo("Shopping", "🛍️", "#98D8C8"),
    Category.EDUCATION: CategoryInfo("Education", "📚", "#F7DC6F"),
    Category.GROCERIES: CategoryInfo("Groceries", "🛒", "#82E0AA"),
    Category.INSURANCE: CategoryInfo("Insurance", "🛡️", "#AED6F1"),
    Category.INVESTMENT: CategoryInfo("Investment", "📈", "#F8C471"),
    Category.OTHER: CategoryInfo("Other", "📝", "#D5DBDB"),
})


class BadgeLevel(enum.Enum):
    """Overall standing derived from a user's active badge points."""

    BEGINNER = "Beginner"
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"

    @classmethod
    def for_points(cls, points):
        for minimum, level in LEVEL_BREAKPOINTS:
            if points >= minimum:
                return level
        return cls.BEGINNER


LEVEL_BREAKPOINTS = (
    (1000, BadgeLevel.DIAMOND),
    (500, BadgeLevel.PLATINUM),
    (250, BadgeLevel.GOLD),
    (100, BadgeLevel.SILVER),
    (50, BadgeLevel.BRONZE),
    (0, BadgeLevel.BEGINNER),
)


class BadgeType(enum.Enum):
    BUDGET_HERO = "BUDGET_HERO"
    CONSISTENT_SAVER = "CONSISTENT_SAVER"
    SPENDING_STREAK_MAINTAINER = "SPENDING_STREAK_MAINTAINER"
    EXPENSE_TRACKER = "EXPENSE_TRACKER"
    CATEGORY_MASTER = "CATEGORY_MASTER"
    MONTHLY_PLANNER = "MONTHLY_PLANNER"
    SAVINGS_CHAMPION = "SAVINGS_CHAMPION"
    EARLY_BIRD = "EARLY_BIRD"

    @property
    def info(self):
        return BADGE_INFO[self]

    @property
    def points(self):
        return BADGE_INFO[self].points


class BadgeInfo(NamedTuple):
    name: str
    description: str
    icon: str
    color: str
    level: BadgeLevel
    points: int


BADGE_INFO = MappingProxyType({
    BadgeType.BUDGET_HERO: BadgeInfo(
        "Budget Hero", "Spent less than 80% of monthly budget",
        "🏆", "#FFD700", BadgeLevel.GOLD, 100),
    BadgeType.CONSISTENT_SAVER: BadgeInfo(
        "Consistent Saver", "Stayed within budget for 3 months",
        "💰", "#32CD32", BadgeLevel.PLATINUM, 200),
    BadgeType.SPENDING_STREAK_MAINTAINER: BadgeInfo(
        "Spending Streak Maintainer", "Logged expenses daily for 7 days",
        "📊", "#4169E1", BadgeLevel.SILVER, 75),
    BadgeType.EXPENSE_TRACKER: BadgeInfo(
        "Expense Tracker", "Added 50+ expenses",
        "📝", "#FF6347", BadgeLevel.BRONZE, 50),
    BadgeType.CATEGORY_MASTER: BadgeInfo(
        "Category Master", "Used all expense categories",
        "🎯", "#9370DB", BadgeLevel.SILVER, 80),
    BadgeType.MONTHLY_PLANNER: BadgeInfo(
        "Monthly Planner", "Set budgets for 6 months",
        "📅", "#20B2AA", BadgeLevel.GOLD, 120),
    BadgeType.SAVINGS_CHAMPION: BadgeInfo(
        "Savings Champion", "Spent at most half of a monthly budget",
        "🏅", "#FF1493", BadgeLevel.DIAMOND, 300),
    BadgeType.EARLY_BIRD: BadgeInfo(
        "Early Bird", "First expense logged within first week of joining",
        "🌅", "#FFA500", BadgeLevel.BRONZE, 25),
})


class BudgetStatus(enum.Enum):
    SAFE = "SAFE"
    MODERATE = "MODERATE"
    WARNING = "WARNING"
    EXCEEDED = "EXCEEDED"

    @classmethod
    def for_percentage(cls, percentage):
        if percentage >= 100:
            return cls.EXCEEDED
        if percentage >= 80:
            return cls.WARNING
        if percentage >= 50:
            return cls.MODERATE
        return cls.SAFE


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120))
    full_name = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    expenses = db.relationship('Expense', backref='user', lazy='dynamic')
    budgets = db.relationship('Budget', backref='user', lazy='dynamic')
    badges = db.relationship('Badge', backref='user', lazy='dynamic')

    @property
    def display_name(self):
        return self.full_name or self.username


class Expense(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.Enum(Category, name='expense_category'), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.String(500))
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def year_month(self):
        return self.date.year, self.date.month

    def __repr__(self):
        return f"<Expense {self.id} {self.amount} {self.category.name} {self.date}>"


class Budget(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    spent_amount = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)
    alert_80_sent = db.Column(db.Boolean, nullable=False, default=False)
    alert_100_sent = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'month', 'year', name='unique_budget'),
    )

    @property
    def period_start(self):
        return date(self.year, self.month, 1)

    @property
    def remaining_amount(self):
        return (self.amount or ZERO) - (self.spent_amount or ZERO)

    @property
    def spent_percentage(self):
        """Spent amount as a percentage of the limit, 0 when the limit is 0."""
        if not self.amount:
            return Decimal(0)
        return (self.spent_amount or ZERO) / self.amount * 100

    @property
    def status(self):
        return BudgetStatus.for_percentage(self.spent_percentage)

    @property
    def is_over_budget(self):
        return (self.spent_amount or ZERO) > self.amount

    @property
    def month_name(self):
        return self.period_start.strftime("%B")

    def __repr__(self):
        return f"<Budget {self.id} {self.year}-{self.month:02d} {self.spent_amount}/{self.amount}>"


class Badge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    badge_type = db.Column(db.Enum(BadgeType, name='badge_type'), nullable=False)
    earned_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    active = db.Column('is_active', db.Boolean, nullable=False, default=True)
    streak_count = db.Column(db.Integer, default=0)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    @property
    def info(self):
        return self.badge_type.info

    @property
    def points(self):
        return self.badge_type.points

    def __repr__(self):
        state = "active" if self.active else "revoked"
        return f"<Badge {self.id} {self.badge_type.name} user={self.user_id} {state}>"


# One active badge per (user, type); revoked rows are kept for history.
db.Index(
    'unique_active_badge',
    Badge.user_id,
    Badge.badge_type,
    unique=True,
    sqlite_where=Badge.active == true(),
    postgresql_where=Badge.active == true(),
)
