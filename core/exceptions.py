# core/exceptions.py
"""
Exception hierarchy for the exchange rate alert service
"""


class RateAlertError(Exception):
    """Base exception for the exchange rate alert service"""
    pass


class ConfigurationError(RateAlertError):
    """Invalid or missing configuration value"""
    pass


# Rate source errors abort the current cycle only

class RateSourceError(RateAlertError):
    """Base exception for rate provider failures"""
    pass


class FetchError(RateSourceError):
    """Network or HTTP failure reaching the rate provider"""
    pass


class ParseError(RateSourceError):
    """Malformed response body from the rate provider"""
    pass


class InvalidRateError(RateSourceError):
    """Extracted rate is not a finite positive number"""
    pass


# Store errors

class StoreError(RateAlertError):
    """Subscriber database unavailable or query failure"""
    pass


class AlreadySubscribedError(StoreError):
    """Email address is already present in the subscriber table"""
    pass


# Per-recipient send errors

class SendError(RateAlertError):
    """Email delivery to a single recipient failed"""
    pass


class TemplateRenderingError(SendError):
    """Alert email template could not be rendered"""
    pass


class NotifierConfigurationError(SendError):
    """Email transport is missing credentials or settings"""
    pass
