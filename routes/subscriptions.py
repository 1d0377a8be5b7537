# routes/subscriptions.py
import logging

from flask import Blueprint, render_template

from core.exceptions import AlreadySubscribedError, StoreError
from core.models import AlertMessage, Classification
from core.rate_evaluator import unknown_message
from routes.forms import SubscriptionForm
from services.context import get_services

subscriptions_bp = Blueprint('subscriptions', __name__)
logger = logging.getLogger(__name__)


def _status(text: str) -> AlertMessage:
    """Banner reusing the rate message slot after a successful form post"""
    return AlertMessage(text=text, classification=Classification.UNKNOWN, color='green')


def _render(form, alert_text: str, alert_type: str, rate_message: AlertMessage = None, status: int = 200):
    return render_template(
        'index.html',
        form=form,
        rate_message=rate_message or unknown_message(),
        alert={'text': alert_text, 'type': alert_type},
    ), status


@subscriptions_bp.route('/subscribe', methods=['POST'])
def subscribe():
    form = SubscriptionForm()
    if not form.validate_on_submit():
        error = form.first_error()
        logger.info(f"Subscription failed. Error: {error}")
        return _render(form, error, 'danger', status=400)

    email = form.normalized_email()
    logger.info(f"New subscription request: {email}")

    try:
        get_services().store.add(email)
    except AlreadySubscribedError:
        return _render(form, 'This email is already subscribed.', 'warning')
    except StoreError as e:
        logger.error(f"Database insertion error: {e}")
        return _render(form, 'Error inserting email into the database.', 'danger', status=500)

    return _render(
        SubscriptionForm(formdata=None),
        'You have successfully subscribed!',
        'success',
        rate_message=_status('Subscribed successfully!'),
    )


@subscriptions_bp.route('/unsubscribe', methods=['POST'])
def unsubscribe():
    form = SubscriptionForm()
    if not form.validate_on_submit():
        return _render(form, form.first_error(), 'danger', status=400)

    email = form.normalized_email()
    logger.info(f"Unsubscribe request for: {email}")

    try:
        removed = get_services().store.remove(email)
    except StoreError as e:
        logger.error(f"Database deletion error: {e}")
        return _render(form, 'Error removing email from the database.', 'danger', status=500)

    if not removed:
        return _render(form, 'Email not found in the subscription list.', 'warning')

    return _render(
        SubscriptionForm(formdata=None),
        'You have successfully unsubscribed.',
        'success',
        rate_message=_status('Subscription removed!'),
    )
