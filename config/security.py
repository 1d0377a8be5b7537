# config/security.py
"""
Security Configuration for the public landing page
"""

import os
from datetime import timedelta


class SecurityConfig:
    """Security configuration settings"""

    # Session settings
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)

    # Rate limiting: 100 requests per IP per 15 minutes
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True

    # CSRF protection
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = 3600  # 1 hour

    # Content Security Policy
    CSP_POLICY = {
        'default-src': "'self'",
        'style-src': "'self' 'unsafe-inline' https: http:",
        'script-src': "'self' 'unsafe-inline' https: http:",
        'img-src': "'self' data: https: http:",
        'connect-src': "'self' https: http:",
    }

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'SAMEORIGIN',
        'Strict-Transport-Security': 'max-age=15552000; includeSubDomains',
        'Referrer-Policy': 'no-referrer',
        'Cross-Origin-Opener-Policy': 'same-origin',
        'X-DNS-Prefetch-Control': 'off',
    }

    # Form posts only carry an email address
    MAX_CONTENT_LENGTH = 16 * 1024
