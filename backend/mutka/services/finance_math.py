"""Loan schedule and balance math.

Pure functions over `Decimal` and `date`; nothing here touches the database. Pauses are
passed as `(start_date, end_date)` pairs with an exclusive end.
"""
from __future__ import annotations
import calendar
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Sequence, Tuple
from mutka.constants.currencies import CURRENCY_SYMBOLS

CENT = Decimal('0.01')
ZERO = Decimal('0')

Pause = Tuple[date, date]


def r2(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def paused_days_in_range(start: date, end: date, pauses: Iterable[Pause]) -> int:
    """Days of [start, end) covered by any pause."""
    total = 0
    for p_start, p_end in pauses:
        overlap = (min(end, p_end) - max(start, p_start)).days
        if overlap > 0:
            total += overlap
    return total


def active_fraction(start: date, end: date, pauses: Iterable[Pause]) -> Decimal:
    days = (end - start).days
    if days <= 0:
        return Decimal('1')
    paused = paused_days_in_range(start, end, pauses)
    return max(ZERO, Decimal(days - paused) / Decimal(days))


def total_paused_days(pauses: Iterable[Pause]) -> int:
    return sum(max(0, (end - start).days) for start, end in pauses)


def _monthly_rate(annual_rate) -> Decimal:
    return Decimal(annual_rate) / Decimal('100') / Decimal('12')


def _periods(start_date: date, term_months: int, pauses: Sequence[Pause]):
    """Yield (month_index, due_date, fraction) for every month that is not fully paused."""
    for i in range(1, term_months + 1):
        due = add_months(start_date, i)
        fraction = active_fraction(add_months(start_date, i - 1), due, pauses)
        if fraction == 0:
            continue
        yield i, due, fraction


def _row(period: int, due: date, principal: Decimal, interest: Decimal) -> dict:
    return {
        'period': period,
        'due_date': due,
        'principal_due': principal,
        'interest_due': interest,
        'total_due': r2(principal + interest),
    }


def annuity(principal, annual_rate, term_months: int, start_date: date, pauses: Sequence[Pause] = ()) -> List[dict]:
    principal = Decimal(principal)
    rate = _monthly_rate(annual_rate)
    if rate > 0:
        pmt = principal * rate / (1 - (1 + rate) ** -term_months)
    else:
        pmt = principal / term_months
    rows: List[dict] = []
    remaining = principal
    for _, due, fraction in _periods(start_date, term_months, pauses):
        interest = r2(remaining * rate * fraction)
        part = r2(pmt - interest)
        if part > remaining:
            part = r2(remaining)
        remaining = r2(remaining - part)
        rows.append(_row(len(rows) + 1, due, part, interest))
    if rows and remaining != 0:
        last = rows[-1]
        last['principal_due'] = r2(last['principal_due'] + remaining)
        last['total_due'] = r2(last['principal_due'] + last['interest_due'])
    return rows


def diff(principal, annual_rate, term_months: int, start_date: date, pauses: Sequence[Pause] = ()) -> List[dict]:
    principal = Decimal(principal)
    rate = _monthly_rate(annual_rate)
    fixed = r2(principal / term_months)
    rows: List[dict] = []
    remaining = principal
    for i, due, fraction in _periods(start_date, term_months, pauses):
        interest = r2(remaining * rate * fraction)
        part = r2(remaining) if i == term_months else fixed
        if part > remaining:
            part = r2(remaining)
        remaining = r2(remaining - part)
        rows.append(_row(len(rows) + 1, due, part, interest))
    return rows


def interest_only(principal, annual_rate, term_months: int, start_date: date,
                  pauses: Sequence[Pause] = ()) -> List[dict]:
    principal = Decimal(principal)
    rate = _monthly_rate(annual_rate)
    rows: List[dict] = []
    for i, due, fraction in _periods(start_date, term_months, pauses):
        interest = r2(principal * rate * fraction)
        part = r2(principal) if i == term_months else r2(ZERO)
        rows.append(_row(len(rows) + 1, due, part, interest))
    return rows


GENERATORS = {
    'annuity': annuity,
    'diff': diff,
    'interest_only': interest_only,
}


def generate_schedule(schedule_type: str, principal, annual_rate, term_months: int, start_date: date,
                      pauses: Sequence[Pause] = ()) -> List[dict]:
    """Rows for the auto-generated schedule types; manual and tranches start empty."""
    gen = GENERATORS.get(schedule_type)
    if gen is None or term_months <= 0:
        return []
    return gen(principal, annual_rate, term_months, start_date, list(pauses))


BALANCE_BUCKETS = {
    'disbursement': 'total_disbursed',
    'principal_repayment': 'principal_repaid',
    'early_repayment': 'principal_repaid',
    'interest_payment': 'interest_repaid',
    'fee': 'fees_and_penalties',
    'penalty': 'fees_and_penalties',
    'adjustment': 'adjustments',
    'offset': 'adjustments',
    'collateral_sale_proceeds': 'collateral_proceeds',
}


def compute_balances(entries: Iterable[Tuple[str, object]]) -> Dict[str, Decimal]:
    totals = {key: ZERO for key in set(BALANCE_BUCKETS.values())}
    for entry_type, amount in entries:
        bucket = BALANCE_BUCKETS.get(entry_type)
        if bucket:
            totals[bucket] += Decimal(amount or 0)
    outstanding = r2(totals['total_disbursed'] - totals['principal_repaid']
                     - totals['collateral_proceeds'] - totals['adjustments'])
    balances = {key: r2(value) for key, value in totals.items()}
    balances['outstanding_principal'] = max(r2(ZERO), outstanding)
    return balances


def format_money(amount, currency: str = 'USD') -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    try:
        value = r2(amount)
    except (ArithmeticError, TypeError, ValueError):
        value = r2(ZERO)
    grouped = f'{value:,.2f}'.translate(str.maketrans({',': '\u00a0', '.': ','}))
    return f'{symbol} {grouped}'
