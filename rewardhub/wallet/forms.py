from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp


class BankDetailsForm(FlaskForm):
    account_holder_name = StringField("Account Holder", validators=[DataRequired(), Length(max=120)])
    account_number = StringField(
        "Account Number", validators=[DataRequired(), Regexp(r"^\d{6,20}$", message="Digits only")]
    )
    ifsc = StringField(
        "IFSC",
        validators=[DataRequired(), Regexp(r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$", message="Invalid IFSC code")],
    )
    bank_name = StringField("Bank", validators=[DataRequired(), Length(max=120)])
    upi_id = StringField("UPI ID", validators=[Optional(), Length(max=120)])


class TransferForm(FlaskForm):
    recipient = StringField("Recipient", validators=[DataRequired(), Length(max=20)])
    amount = IntegerField("Amount", validators=[DataRequired(), NumberRange(min=1)])
    note = StringField("Note", validators=[Optional(), Length(max=255)])
