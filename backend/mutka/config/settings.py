"""Environment-driven settings loaded by the app factory.

Values come from the process environment (a local `.env` is loaded by
python-dotenv on import of the package). `create_app(config)` may override any key.
"""
from __future__ import annotations
import os
from decimal import Decimal

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def _bool(raw) -> bool:
    return str(raw).strip().lower() in ('1', 'true', 'yes', 'on')


def load_settings() -> dict:
    admin_emails = os.getenv('PLATFORM_ADMIN_EMAILS', '')
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'VIEW_AS_SECRET': os.getenv('VIEW_AS_SECRET', 'dev-view-as-secret'),
        'VIEW_AS_TTL_MINUTES': int(os.getenv('VIEW_AS_TTL_MINUTES', '30')),
        'VIEW_AS_COOKIE_SECURE': _bool(os.getenv('VIEW_AS_COOKIE_SECURE', 'false')),
        'PLATFORM_ADMIN_EMAILS': [e.strip().lower() for e in admin_emails.split(',') if e.strip()],
        'RATES_API_URL': os.getenv('RATES_API_URL', 'https://open.er-api.com/v6/latest/USD'),
        'RATES_HTTP_TIMEOUT': float(os.getenv('RATES_HTTP_TIMEOUT', '8')),
        'FX_MAX_RATE_DEVIATION': Decimal(os.getenv('FX_MAX_RATE_DEVIATION', '0.05')),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
    }


def normalize_pagination(limit_raw, offset_raw, default_limit: int = DEFAULT_LIMIT):
    try:
        limit = int(limit_raw) if limit_raw is not None else default_limit
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset
