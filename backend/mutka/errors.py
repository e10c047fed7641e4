"""HTTP exceptions carrying a machine-readable `error_code`.

The app-wide error handler renders `error_code` as `error.code` next to the usual
status/title/detail triple.
"""
from __future__ import annotations
from werkzeug.exceptions import BadRequest, Forbidden


class ReadOnlyMode(Forbidden):
    error_code = 'read_only_mode'
    description = 'Read-only mode: changes are not allowed while viewing as another user'


class NoCompany(Forbidden):
    error_code = 'no_company'
    description = 'User is not a member of any company'


class InsufficientFunds(BadRequest):
    error_code = 'insufficient_funds'
    description = 'Insufficient funds'


class CashboxArchived(BadRequest):
    error_code = 'cashbox_archived'
    description = 'Cashbox is archived'


class RateDeviation(BadRequest):
    error_code = 'rate_deviation'
    description = 'Exchange amounts deviate from the declared rate'


__all__ = ['ReadOnlyMode', 'NoCompany', 'InsufficientFunds', 'CashboxArchived', 'RateDeviation']
