import logging

from app import create_app, get_services
from budgets import BudgetService
from config import TestConfig
from notifier import LogTransport


def test_create_app_leaves_root_logger_alone():
    root = logging.getLogger()
    before = (root.level, list(root.handlers))

    app = create_app(TestConfig)
    create_app(TestConfig)

    assert (root.level, list(root.handlers)) == before
    assert app.logger.level == logging.DEBUG


def test_services_are_wired():
    services = get_services(create_app(TestConfig))
    assert isinstance(services.budgets, BudgetService)
    assert services.badges.budgets is services.budgets
    assert isinstance(services.notifier.transport, LogTransport)
