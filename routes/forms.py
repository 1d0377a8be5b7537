from email_validator import validate_email, EmailNotValidError
from flask_wtf import FlaskForm
from wtforms import EmailField
from wtforms.validators import DataRequired, Email, Length

INVALID_EMAIL_MESSAGE = 'Invalid email format'


class SubscriptionForm(FlaskForm):
    """Single email field shared by the subscribe and unsubscribe forms"""

    email = EmailField('Email', validators=[
        DataRequired(message=INVALID_EMAIL_MESSAGE),
        Length(max=255, message=INVALID_EMAIL_MESSAGE),
        Email(message=INVALID_EMAIL_MESSAGE),
    ])

    def normalized_email(self) -> str:
        """Trimmed, lower-cased canonical form of the submitted address"""
        raw = (self.email.data or '').strip()
        try:
            return validate_email(raw, check_deliverability=False).normalized.lower()
        except EmailNotValidError:
            return raw.lower()

    def first_error(self) -> str:
        for errors in self.errors.values():
            if errors:
                return errors[0]
        return INVALID_EMAIL_MESSAGE
