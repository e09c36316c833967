import os

class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///expense_rewards.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_NAME = os.environ.get("APP_NAME", "ExpenseMate")
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₹")
    DASHBOARD_URL = os.environ.get("DASHBOARD_URL", "http://localhost:5000/dashboard")

    # Notifications fall back to the log when no SMTP server is configured
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", 25))
    MAIL_SENDER = os.environ.get("MAIL_SENDER", "noreply@localhost")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    JOB_POLL_SECONDS = int(os.environ.get("JOB_POLL_SECONDS", 60))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    MAIL_SERVER = None
    LOG_LEVEL = "DEBUG"
