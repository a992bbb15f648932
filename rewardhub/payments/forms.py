from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField
from wtforms.validators import DataRequired, NumberRange


class OrderForm(FlaskForm):
    amount = IntegerField("Amount", validators=[DataRequired(), NumberRange(min=1)])


class VerifyPaymentForm(FlaskForm):
    razorpay_order_id = StringField("Order", validators=[DataRequired()])
    razorpay_payment_id = StringField("Payment", validators=[DataRequired()])
    razorpay_signature = StringField("Signature", validators=[DataRequired()])
    amount = IntegerField("Amount", validators=[DataRequired(), NumberRange(min=1)])
