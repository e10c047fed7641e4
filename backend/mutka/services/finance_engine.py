"""Finance deals: creation, lifecycle, schedule regeneration, pauses, ledger and summary.

The schedule is always derived: any change to pauses or terms deletes the rows and
writes a fresh PLANNED set from `finance_math`. Callers commit.
"""
from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import List, Optional
from flask import abort
from sqlalchemy import select, delete
from mutka.models.finance import (
    CoreDeal, FinanceDeal, FinanceScheduleRow, FinancePause, FinanceLedgerEntry, FinanceParticipant,
)
from mutka.models.cashbox import CashboxTransaction
from mutka.services import finance_math
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation
from mutka.utils.fsm import TransitionValidator
from mutka.utils.dates import utcnow, today

DEAL_FSM = TransitionValidator({
    CoreDeal.STATUS_NEW: {CoreDeal.STATUS_ACTIVE, CoreDeal.STATUS_CANCELLED},
    CoreDeal.STATUS_ACTIVE: {CoreDeal.STATUS_PAUSED, CoreDeal.STATUS_CLOSED, CoreDeal.STATUS_DEFAULT},
    CoreDeal.STATUS_PAUSED: {CoreDeal.STATUS_ACTIVE, CoreDeal.STATUS_DEFAULT},
    CoreDeal.STATUS_DEFAULT: {CoreDeal.STATUS_CLOSED},
    CoreDeal.STATUS_CLOSED: set(),
    CoreDeal.STATUS_CANCELLED: set(),
})

# cashbox direction per ledger entry type
DEBIT_TYPES = ('disbursement',)
CREDIT_TYPES = ('principal_repayment', 'early_repayment', 'interest_payment')


def finance_deal_number(deal_id: int, when=None) -> str:
    when = when or utcnow()
    return f"FD-{when.strftime('%Y%m%d')}-{deal_id:05d}"


def create_finance_deal(session, company_id: int, *, title: str, principal: Decimal, currency: str,
                        term_months: int, rate_percent: Decimal, schedule_type: str, start_date: date,
                        contact_id: Optional[int] = None, created_by: Optional[int] = None) -> CoreDeal:
    if term_months <= 0:
        abort(400, description='term_months must be positive')
    if schedule_type not in FinanceDeal.ALL_SCHEDULE_TYPES:
        abort(400, description=f"schedule_type must be one of {', '.join(FinanceDeal.ALL_SCHEDULE_TYPES)}")
    core = CoreDeal(company_id=company_id, kind=CoreDeal.KIND_FINANCE, title=title, status=CoreDeal.STATUS_NEW,
                    contact_id=contact_id, created_by=created_by)
    core.finance = FinanceDeal(principal_amount=principal, contract_currency=currency, term_months=term_months,
                               rate_percent=rate_percent, schedule_type=schedule_type, start_date=start_date)
    session.add(core)
    session.flush()
    core.deal_number = finance_deal_number(core.id)
    regenerate_schedule(session, core.finance)
    return core


def set_status(core: CoreDeal, new_status: str) -> CoreDeal:
    DEAL_FSM.assert_can_transition(core.status, new_status)
    core.status = new_status
    return core


def pause_pairs(session, fd: FinanceDeal) -> List[tuple]:
    rows = session.execute(
        select(FinancePause.start_date, FinancePause.end_date)
        .where(FinancePause.finance_deal_id == fd.id)
        .order_by(FinancePause.start_date)
    ).all()
    return [(r.start_date, r.end_date) for r in rows]


def regenerate_schedule(session, fd: FinanceDeal) -> int:
    session.execute(delete(FinanceScheduleRow).where(FinanceScheduleRow.finance_deal_id == fd.id))
    rows = finance_math.generate_schedule(fd.schedule_type, fd.principal_amount, fd.rate_percent, fd.term_months,
                                          fd.start_date, pause_pairs(session, fd))
    for row in rows:
        session.add(FinanceScheduleRow(finance_deal_id=fd.id, currency=fd.contract_currency,
                                       status=FinanceScheduleRow.STATUS_PLANNED, **row))
    session.flush()
    return len(rows)


def _pause_covers(start: date, end: date, on: date) -> bool:
    """Pauses are half-open [start, end), the same window the schedule prorates by."""
    return start <= on < end


def pause_deal(session, core: CoreDeal, start: date, end: date, reason: Optional[str] = None,
               created_by: Optional[int] = None) -> FinancePause:
    if start >= end:
        abort(400, description='start_date must be before end_date')
    if core.status in (CoreDeal.STATUS_CLOSED, CoreDeal.STATUS_CANCELLED):
        abort(400, description=f'Deal is {core.status}')
    pause = FinancePause(finance_deal_id=core.finance.id, start_date=start, end_date=end, reason=reason,
                         created_by=created_by)
    session.add(pause)
    session.flush()
    if _pause_covers(start, end, today()) and DEAL_FSM.can_transition(core.status, CoreDeal.STATUS_PAUSED):
        core.status = CoreDeal.STATUS_PAUSED
    regenerate_schedule(session, core.finance)
    return pause


def get_pause(session, core: CoreDeal, pause_id: int) -> FinancePause:
    pause = session.get(FinancePause, pause_id)
    if not pause or pause.finance_deal_id != core.finance.id:
        abort(404, description='Pause not found')
    return pause


def resume_deal(session, core: CoreDeal, pause: FinancePause) -> FinancePause:
    pause.end_date = today()
    if core.status != CoreDeal.STATUS_ACTIVE:
        set_status(core, CoreDeal.STATUS_ACTIVE)
    regenerate_schedule(session, core.finance)
    return pause


def delete_pause(session, core: CoreDeal, pause: FinancePause) -> None:
    session.delete(pause)
    session.flush()
    now = today()
    still_paused = any(_pause_covers(s, e, now) for s, e in pause_pairs(session, core.finance))
    if core.status == CoreDeal.STATUS_PAUSED and not still_paused:
        core.status = CoreDeal.STATUS_ACTIVE
    regenerate_schedule(session, core.finance)


def add_ledger_entry(session, core: CoreDeal, *, entry_type: str, amount: Decimal, currency: str,
                     entry_date: Optional[date] = None, note: Optional[str] = None, cashbox_id=None,
                     asset_id: Optional[int] = None, created_by: Optional[int] = None) -> FinanceLedgerEntry:
    if entry_type not in FinanceLedgerEntry.ENTRY_TYPES:
        abort(400, description=f"entry_type must be one of {', '.join(FinanceLedgerEntry.ENTRY_TYPES)}")
    if amount is None or amount <= 0:
        abort(400, description='amount must be positive')
    entry = FinanceLedgerEntry(finance_deal_id=core.finance.id, entry_type=entry_type, amount=amount,
                               currency=currency, entry_date=entry_date or today(), note=note, asset_id=asset_id,
                               created_by=created_by)
    if cashbox_id:
        if entry_type in DEBIT_TYPES:
            signed = -amount
        elif entry_type in CREDIT_TYPES:
            signed = amount
        else:
            abort(400, description=f'{entry_type} entries do not move cashbox money')
        cb = get_cashbox_for_update(session, cashbox_id)
        if cb.currency != currency:
            abort(400, description=f'Cashbox currency {cb.currency} does not match entry currency {currency}')
        cashbox_operation(session, cb, signed, CashboxTransaction.CAT_FINANCE,
                          note or f'{core.deal_number}: {entry_type}', reference_id=core.id, created_by=created_by)
        entry.cashbox_id = cb.id
    session.add(entry)
    session.flush()
    return entry


def add_participant(session, core: CoreDeal, *, role: str, contact_id: Optional[int] = None,
                    employee_id: Optional[int] = None, note: Optional[str] = None) -> FinanceParticipant:
    if role not in FinanceParticipant.ALL_ROLES:
        abort(400, description=f"role must be one of {', '.join(FinanceParticipant.ALL_ROLES)}")
    if not contact_id and not employee_id:
        abort(400, description='contact_id or employee_id required')
    p = FinanceParticipant(finance_deal_id=core.finance.id, role=role, contact_id=contact_id,
                           employee_id=employee_id, note=note)
    session.add(p)
    session.flush()
    return p


def remove_participant(session, core: CoreDeal, participant_id: int) -> None:
    p = session.get(FinanceParticipant, participant_id)
    if not p or p.finance_deal_id != core.finance.id:
        abort(404, description='Participant not found')
    session.delete(p)
    session.flush()


def deal_balances(session, fd: FinanceDeal) -> dict:
    entries = session.execute(
        select(FinanceLedgerEntry.entry_type, FinanceLedgerEntry.amount)
        .where(FinanceLedgerEntry.finance_deal_id == fd.id)
    ).all()
    return finance_math.compute_balances((e.entry_type, e.amount) for e in entries)


def get_deal_summary(session, core: CoreDeal) -> dict:
    fd = core.finance
    balances = deal_balances(session, fd)
    pauses = pause_pairs(session, fd)
    unpaid = session.execute(
        select(FinanceScheduleRow.interest_due).where(
            FinanceScheduleRow.finance_deal_id == fd.id,
            FinanceScheduleRow.due_date <= today(),
            FinanceScheduleRow.status != FinanceScheduleRow.STATUS_PAID,
        )
    ).scalars().all()
    unpaid_interest = finance_math.r2(sum((Decimal(v) for v in unpaid), Decimal('0')))
    total_owed = finance_math.r2(balances['outstanding_principal'] + unpaid_interest)
    return {
        'balances': balances,
        'unpaid_interest': unpaid_interest,
        'total_owed': total_owed,
        'total_owed_display': finance_math.format_money(total_owed, fd.contract_currency),
        'pause_count': len(pauses),
        'total_paused_days': finance_math.total_paused_days(pauses),
        'currency': fd.contract_currency,
    }
