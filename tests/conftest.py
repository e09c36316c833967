"""Shared fixtures: an app on in-memory SQLite, a fixed clock and a notifier
that records what it was asked to send instead of sending it."""
import itertools
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app import create_app, get_services
from config import TestConfig
from models import db, Category, Expense, User
from notifier import DeliveryResult, Notifier

NOW = datetime(2024, 3, 15, 12, 0)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier(Notifier):
    def __init__(self):
        super().__init__()
        self.alerts = []
        self.badges = []

    def send_budget_threshold_alert(self, budget, threshold):
        self.alerts.append((budget.id, threshold))
        return DeliveryResult.DELIVERED

    def send_badge_awarded(self, user, badge):
        self.badges.append((user.id, badge.badge_type))
        return DeliveryResult.DELIVERED


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier, clock):
    app = create_app(TestConfig, notifier=notifier, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    return get_services(app)


@pytest.fixture
def make_user(app, clock):
    counter = itertools.count(1)

    def factory(username=None, created_at=None, email=None):
        n = next(counter)
        user = User(
            username=username or f"user{n}",
            email=email or f"user{n}@example.com",
            full_name=f"Test User {n}",
            created_at=created_at or clock() - timedelta(days=30),
        )
        db.session.add(user)
        db.session.commit()
        return user

    return factory


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def spend(services):

    def add(user, amount, day, category=Category.FOOD, description="Lunch", notes=None):
        return services.expenses.create_expense(
            user, description=description, amount=amount, date=day, category=category, notes=notes)

    return add


@pytest.fixture
def insert_expenses(app):
    """Write expense rows directly, skipping recompute and badge checks."""

    def insert(user, count, day=date(2024, 1, 10), amount="10.00", categories=(Category.FOOD,)):
        for i in range(count):
            db.session.add(Expense(
                user_id=user.id, description=f"Item {i}", amount=Decimal(amount),
                category=categories[i % len(categories)], date=day,
            ))
        db.session.commit()

    return insert
