from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO

import pandas as pd

from models import db, Budget, Expense, ZERO

CENTS = Decimal("0.01")


def month_bounds(year, month):
    start = date(year, month, 1)
    if month == 12:
        return start, date(year + 1, 1, 1)
    return start, date(year, month + 1, 1)


def months_back(today, months):
    index = today.year * 12 + (today.month - 1) - months
    return date(index // 12, index % 12 + 1, 1)


def _user_expenses(user):
    return Expense.query.filter(Expense.user_id == user.id)


def _in_month(query, year, month):
    start, end = month_bounds(year, month)
    return query.filter(Expense.date >= start, Expense.date < end)


def expenses_in_month(user, year, month):
    return _in_month(_user_expenses(user), year, month)\
        .order_by(Expense.date, Expense.id).all()


def monthly_total(user, year, month):
    total = _in_month(
        db.session.query(db.func.coalesce(db.func.sum(Expense.amount), 0))
        .filter(Expense.user_id == user.id),
        year, month,
    ).scalar()
    return total if total is not None else ZERO


def category_spending(user, year, month):
    rows = _in_month(
        db.session.query(Expense.category, db.func.sum(Expense.amount))
        .filter(Expense.user_id == user.id),
        year, month,
    ).group_by(Expense.category).order_by(db.func.sum(Expense.amount).desc()).all()
    return {category: total for category, total in rows}


def monthly_trend(user, today):
    start = months_back(today, 11)
    _, end = month_bounds(today.year, today.month)
    year_col = db.extract('year', Expense.date)
    month_col = db.extract('month', Expense.date)
    rows = db.session.query(year_col, month_col, db.func.sum(Expense.amount))\
        .filter(Expense.user_id == user.id, Expense.date >= start, Expense.date < end)\
        .group_by(year_col, month_col)\
        .order_by(year_col, month_col).all()
    trend = OrderedDict()
    for year, month, total in rows:
        trend[f"{int(year):04d}-{int(month):02d}"] = total
    return trend


def daily_breakdown(user, today):
    day_col = db.extract('day', Expense.date)
    rows = _in_month(
        db.session.query(day_col, db.func.sum(Expense.amount))
        .filter(Expense.user_id == user.id),
        today.year, today.month,
    ).group_by(day_col).order_by(day_col).all()
    return {int(day): total for day, total in rows}


def distinct_expense_days(user, start, end):
    return db.session.query(db.func.count(db.distinct(Expense.date)))\
        .filter(Expense.user_id == user.id, Expense.date >= start, Expense.date <= end)\
        .scalar() or 0


def expense_streak(user, today):
    """Consecutive days, ending today, on which at least one expense was logged."""
    dates = db.session.query(Expense.date)\
        .filter(Expense.user_id == user.id, Expense.date <= today)\
        .distinct().order_by(Expense.date.desc())
    streak = 0
    expected = today
    for (day,) in dates:
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak


def distinct_categories(user):
    rows = db.session.query(Expense.category).filter(Expense.user_id == user.id).distinct().all()
    return {category for (category,) in rows}


def top_expenses(user, limit=5):
    # id breaks ties so equal amounts keep insertion order
    return _user_expenses(user).order_by(Expense.amount.desc(), Expense.id.asc()).limit(limit).all()


def expense_count(user):
    return _user_expenses(user).count()


def budget_count(user):
    return Budget.query.filter(Budget.user_id == user.id).count()


def average_daily_spending(user, today):
    daily = daily_breakdown(user, today)
    if not daily:
        return ZERO
    return (sum(daily.values(), ZERO) / len(daily)).quantize(CENTS)


def top_spending_categories(user, today):
    spending = category_spending(user, today.year, today.month)
    return list(spending)


def search_expenses(user, keyword):
    escaped = keyword.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return _user_expenses(user)\
        .filter(db.func.lower(Expense.description).like(pattern, escape="\\"))\
        .order_by(Expense.date.desc(), Expense.id.desc()).all()


def expense_stats(user, today):
    top = top_spending_categories(user, today)
    return {
        "total_expenses": expense_count(user),
        "current_month_expenses": len(expenses_in_month(user, today.year, today.month)),
        "current_month_total": monthly_total(user, today.year, today.month),
        "average_daily": average_daily_spending(user, today),
        "top_category": top[0] if top else None,
    }


def expenses_frame(user):
    expenses = _user_expenses(user).order_by(Expense.date, Expense.id).all()
    data = [{
        "Description": e.description,
        "Amount": e.amount,
        "Category": e.category.info.display_name,
        "Date": e.date.strftime('%Y-%m-%d'),
        "Notes": e.notes or "",
    } for e in expenses]
    return pd.DataFrame(data, columns=["Description", "Amount", "Category", "Date", "Notes"])


def export_expenses_csv(user):
    buf = BytesIO()
    expenses_frame(user).to_csv(buf, index=False)
    return buf.getvalue()
