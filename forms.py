from datetime import date
from decimal import Decimal, InvalidOperation

from wtforms import Form, StringField, DecimalField, SelectField, DateField, IntegerField
from wtforms.validators import DataRequired, Length, NumberRange

from exceptions import ValidationError
from models import Category, CATEGORY_INFO

MIN_AMOUNT = Decimal("0.01")
# Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")


class ExpenseForm(Form):
    description = StringField("Description", validators=[DataRequired(), Length(max=255)])
    amount = DecimalField("Amount", places=2, validators=[
        DataRequired(), NumberRange(min=MIN_AMOUNT, max=MAX_AMOUNT, message="Amount must be between 0.01 and 99999999.99")])
    date = DateField("Date", validators=[DataRequired()])
    category = SelectField("Category", choices=[
        (category.name, info.display_name) for category, info in CATEGORY_INFO.items()])
    notes = StringField("Notes", validators=[Length(max=500)])


class BudgetForm(Form):
    month = IntegerField("Month", validators=[DataRequired(), NumberRange(min=1, max=12)])
    year = IntegerField("Year", validators=[DataRequired(), NumberRange(min=1900, max=9999)])
    amount = DecimalField("Budget Amount", places=2, validators=[
        DataRequired(), NumberRange(min=MIN_AMOUNT, max=MAX_AMOUNT, message="Budget amount must be between 0.01 and 99999999.99")])


def _to_decimal(value):
    if value is None:
        return value
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValidationError({"amount": ["Not a valid decimal value."]})
    if not amount.is_finite():
        raise ValidationError({"amount": ["Amount must be a finite number."]})
    return amount


def validate_expense(**fields):
    data = dict(fields)
    data["amount"] = _to_decimal(data.get("amount"))
    if isinstance(data.get("date"), str):
        try:
            data["date"] = date.fromisoformat(data["date"])
        except ValueError:
            raise ValidationError({"date": ["Not a valid date value."]})
    if isinstance(data.get("category"), Category):
        data["category"] = data["category"].name
    form = ExpenseForm(data=data)
    if not form.validate():
        raise ValidationError(form.errors)
    return {
        "description": form.description.data.strip(),
        "amount": form.amount.data,
        "date": form.date.data,
        "category": Category[form.category.data],
        "notes": form.notes.data or None,
    }


def validate_budget(year, month, amount):
    form = BudgetForm(data={"year": year, "month": month, "amount": _to_decimal(amount)})
    if not form.validate():
        raise ValidationError(form.errors)
    return form.year.data, form.month.data, form.amount.data
