import logging
from datetime import datetime
from typing import NamedTuple

import click
from flask import Flask, current_app

from badges import BadgeService
from budgets import BudgetService
from config import Config
from expenses import ExpenseService
from jobs import JobRunner, JobScheduler
from models import db
from notifier import Notifier

EXTENSION_KEY = "expense_rewards"


class Services(NamedTuple):
    notifier: Notifier
    budgets: BudgetService
    badges: BadgeService
    expenses: ExpenseService
    jobs: JobRunner


def log_level(app):
    return getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)


def configure_logging(app):
    # process-wide, only for the command line entry points
    logging.basicConfig(
        level=log_level(app),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


def create_app(config_class=Config, notifier=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(log_level(app))

    db.init_app(app)

    clock = clock or datetime.now
    notifier = notifier or Notifier.from_config(app.config)
    budgets = BudgetService(notifier, clock=clock)
    badges = BadgeService(notifier, budgets, clock=clock)
    expenses = ExpenseService(budgets, badges)
    jobs = JobRunner(app, budgets, badges)
    app.extensions[EXTENSION_KEY] = Services(notifier, budgets, badges, expenses, jobs)

    register_commands(app)
    return app


def get_services(app=None):
    return (app or current_app).extensions[EXTENSION_KEY]


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create the database tables."""
        db.create_all()
        click.echo("Database initialised.")

    @app.cli.command("run-job")
    @click.argument("name")
    def run_job(name):
        """Run one periodic job now."""
        configure_logging(current_app)
        runner = get_services().jobs
        if name not in runner.jobs:
            raise click.BadParameter(f"choose from {', '.join(sorted(runner.jobs))}", param_hint="NAME")
        runner.run(name)

    @app.cli.command("run-scheduler")
    @click.option("--poll", type=int, default=None, help="Seconds between schedule checks.")
    def run_scheduler(poll):
        """Run the periodic jobs until interrupted."""
        configure_logging(current_app)
        scheduler = JobScheduler(get_services().jobs)
        try:
            scheduler.run_forever(poll or current_app.config["JOB_POLL_SECONDS"])
        except KeyboardInterrupt:
            click.echo("Scheduler interrupted.")


if __name__ == "__main__":
    app = create_app()
    configure_logging(app)
    with app.app_context():
        db.create_all()
    scheduler = JobScheduler(get_services(app).jobs)
    scheduler.run_forever(app.config["JOB_POLL_SECONDS"])
