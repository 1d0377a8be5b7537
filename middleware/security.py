# middleware/security.py
"""
Security Middleware for Request Processing
"""

import logging
from typing import Dict

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

# Initialised against the app in create_app(); default limits come from
# RATELIMIT_DEFAULT in the app config
limiter = Limiter(key_func=get_remote_address)


def build_csp(policy: Dict[str, str]) -> str:
    """Serialize a directive mapping into a Content-Security-Policy value"""
    return '; '.join(f"{directive} {sources}" for directive, sources in policy.items())


def security_headers(response):
    """Add security headers to all responses"""
    config = current_app.config

    for header, value in config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)

    policy = config.get('CSP_POLICY')
    if policy:
        response.headers['Content-Security-Policy'] = build_csp(policy)

    return response
