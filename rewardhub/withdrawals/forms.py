from flask_wtf import FlaskForm
from wtforms import IntegerField
from wtforms.validators import InputRequired


class WithdrawalForm(FlaskForm):
    amount = IntegerField("Amount", validators=[InputRequired()])
