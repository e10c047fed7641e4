"""Currency codes, fallback rates and exchange-pair templates."""
from __future__ import annotations
from decimal import Decimal
from typing import Dict, List

SUPPORTED_CURRENCIES = ['USD', 'RUB', 'EUR', 'USDT']

# Used when the rates provider is unreachable
DEFAULT_USD_TO_RUB = Decimal('92.5')
DEFAULT_USD_TO_EUR = Decimal('0.92')

FALLBACK_RATES: Dict[str, Dict[str, Decimal]] = {
    'USD': {'RUB': Decimal('92.5'), 'EUR': Decimal('0.92'), 'USDT': Decimal('1')},
    'RUB': {'USD': Decimal('0.0108'), 'EUR': Decimal('0.01'), 'USDT': Decimal('0.0108')},
    'EUR': {'USD': Decimal('1.087'), 'RUB': Decimal('100.25'), 'USDT': Decimal('1.087')},
    'USDT': {'USD': Decimal('1'), 'RUB': Decimal('92.5'), 'EUR': Decimal('0.92')},
}

SYSTEM_RATE_DEFAULTS = [
    # code, name, symbol, sort_order
    ('RUB', 'Российский рубль', '₽', 0),
    ('USD', 'US Dollar', '$', 1),
    ('EUR', 'Euro', '€', 2),
    ('USDT', 'Tether', '₮', 3),
]

COINGECKO_IDS: Dict[str, str] = {
    'BTC': 'bitcoin',
    'ETH': 'ethereum',
    'USDT': 'tether',
    'USDC': 'usd-coin',
    'BNB': 'binancecoin',
    'XRP': 'ripple',
    'SOL': 'solana',
    'ADA': 'cardano',
}

COINGECKO_PRICE_URL = 'https://api.coingecko.com/api/v3/simple/price'
EXCHANGERATE_API_URL = 'https://api.exchangerate-api.com/v4/latest/{base}'

CURRENCY_SYMBOLS: Dict[str, str] = {
    'USD': '$', 'EUR': '€', 'GEL': '₾', 'RUB': '₽', 'USDT': '₮', 'AED': 'AED', 'TRY': '₺',
}

# (from, to, is_popular)
_TEMPLATE_PAIRS = [
    ('USD', 'RUB', True), ('EUR', 'RUB', True), ('USD', 'EUR', True), ('USDT', 'RUB', True),
    ('USD', 'USDT', True), ('USDT', 'EUR', False), ('BTC', 'RUB', False), ('BTC', 'USD', True),
    ('BTC', 'USDT', False), ('ETH', 'RUB', False), ('ETH', 'USD', False), ('ETH', 'USDT', False),
    ('EUR', 'USD', False), ('GBP', 'RUB', False), ('CNY', 'RUB', False),
]

DEFAULT_EXCHANGE_RATE_TEMPLATES: List[dict] = [
    {'from_currency': f, 'to_currency': t, 'is_popular': popular, 'sort_order': i + 1}
    for i, (f, t, popular) in enumerate(_TEMPLATE_PAIRS)
]
