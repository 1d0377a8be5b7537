# core/rate_evaluator.py
"""
Pure classification of an exchange rate against a fixed threshold
"""

from core.models import AlertMessage, Classification

DEFAULT_FAVORABLE_TEXT = 'Good time to buy!'
DEFAULT_UNFAVORABLE_TEXT = 'Bad time to buy.'
UNKNOWN_TEXT = 'Unable to fetch exchange rate.'

# Colors understood by the landing page template
FAVORABLE_COLOR = 'green'
UNFAVORABLE_COLOR = 'red'
UNKNOWN_COLOR = 'gray'


def evaluate(rate: float,
             threshold: float,
             favorable_text: str = DEFAULT_FAVORABLE_TEXT,
             unfavorable_text: str = DEFAULT_UNFAVORABLE_TEXT) -> AlertMessage:
    """
    Classify a rate sample value.

    The comparison is strict: a rate equal to the threshold is unfavorable.

    Args:
        rate: Derived exchange rate value
        threshold: Favorable-rate threshold from configuration
        favorable_text: Message shown when the rate beats the threshold
        unfavorable_text: Message shown otherwise

    Returns:
        Immutable AlertMessage carrying the evaluated rate
    """
    if rate > threshold:
        return AlertMessage(
            text=favorable_text,
            classification=Classification.FAVORABLE,
            color=FAVORABLE_COLOR,
            rate=rate
        )

    return AlertMessage(
        text=unfavorable_text,
        classification=Classification.UNFAVORABLE,
        color=UNFAVORABLE_COLOR,
        rate=rate
    )


def unknown_message() -> AlertMessage:
    """Neutral message rendered when the rate could not be fetched"""
    return AlertMessage(
        text=UNKNOWN_TEXT,
        classification=Classification.UNKNOWN,
        color=UNKNOWN_COLOR
    )
