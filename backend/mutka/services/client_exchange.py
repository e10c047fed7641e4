"""Client-facing currency exchange: one operation, many currency lines, several cashboxes.

`submit_exchange` and `cancel_exchange` stage everything in the caller's session; the
route commits once, so a shortfall on any line undoes the whole operation.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, List, Optional
from flask import abort
from mutka.models.cashbox import CashboxTransaction
from mutka.models.client_exchange import ClientExchangeOperation, ClientExchangeDetail, ClientExchangeParticipant
from mutka.models.contact import Contact
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation
from mutka.services.contacts import get_or_create_contact, log_contact_event
from mutka.services.audit import add_audit
from mutka.utils.validation import parse_amount, parse_id, validate_currency, validate_status
from mutka.utils.dates import utcnow, parse_datetime

MODULE = 'exchange'


def operation_number(op_id: int, when=None) -> str:
    when = when or utcnow()
    return f"EX-{when.strftime('%Y%m%d')}-{op_id:05d}"


def _resolve_contact(session, company_id: int, contact_id, name: Optional[str], phone: Optional[str], created_by) -> Optional[Contact]:
    if contact_id:
        contact = session.get(Contact, parse_id(contact_id, 'contact_id'))
        if not contact or contact.company_id != company_id:
            abort(400, description=f'Contact {contact_id} not found')
        return contact
    return get_or_create_contact(session, company_id, name, phone, MODULE, created_by)


def _lines(raw, label: str) -> List[Dict[str, Any]]:
    out = []
    for i, line in enumerate(raw or []):
        if not isinstance(line, dict):
            abort(400, description=f'{label}[{i}] invalid')
        amount = parse_amount(line.get('amount'), f'{label}[{i}].amount', non_negative=True, default=Decimal('0'))
        if amount == 0 or not line.get('cashbox_id'):
            continue
        out.append({
            'currency': validate_currency(line.get('currency'), field_name=f'{label}[{i}].currency'),
            'amount': amount,
            'cashbox_id': line['cashbox_id'],
        })
    return out


def _rate_index(rates: List[dict], base_currency: str) -> Dict[tuple, dict]:
    index = {}
    for i, r in enumerate(rates or []):
        currency = validate_currency(r.get('line_currency'), field_name=f'rates[{i}].line_currency')
        direction = r.get('direction')
        applied = parse_amount(r.get('applied_rate'), f'rates[{i}].applied_rate', positive=True, required=False)
        if currency != base_currency and applied is None:
            abort(400, description=f'applied_rate required for {currency}')
        index[(currency, direction)] = {
            'applied_rate': applied,
            'market_rate': parse_amount(r.get('market_rate'), f'rates[{i}].market_rate', positive=True, required=False),
            'amount_in_base': parse_amount(r.get('amount_in_base'), f'rates[{i}].amount_in_base', required=False),
        }
    return index


def _snapshot_rates(rates: List[dict]) -> List[dict]:
    keep = ('line_currency', 'direction', 'applied_rate', 'market_rate', 'amount_in_base')
    return [{k: r.get(k) for k in keep} for r in (rates or [])]


def submit_exchange(session, company_id: int, data: dict, created_by: int) -> ClientExchangeOperation:
    base = validate_currency(data.get('base_currency'), field_name='base_currency')
    participants_in = data.get('participants') or []
    client_side = [p for p in participants_in if isinstance(p, dict) and p.get('role') in ClientExchangeParticipant.CLIENT_SIDE_ROLES]
    if len(client_side) > 1 and not data.get('beneficiary_contact_id'):
        abort(400, description='beneficiary_contact_id required when several client-side participants are present')
    visibility = validate_status(data.get('visibility_mode') or ClientExchangeOperation.VISIBILITY_PUBLIC,
                                 (ClientExchangeOperation.VISIBILITY_PUBLIC, ClientExchangeOperation.VISIBILITY_RESTRICTED),
                                 'visibility_mode')
    gives = _lines(data.get('client_gives'), 'client_gives')
    receives = _lines(data.get('client_receives'), 'client_receives')
    if not gives and not receives:
        abort(400, description='At least one exchange line with a cashbox is required')
    rates = _rate_index(data.get('rates'), base)

    client = _resolve_contact(session, company_id, data.get('contact_id'), data.get('client_name'), data.get('client_phone'), created_by)
    now = utcnow()
    op = ClientExchangeOperation(
        company_id=company_id,
        status=ClientExchangeOperation.STATUS_COMPLETED,
        base_currency=base,
        total_client_gives_base=parse_amount(data.get('total_gives_base'), 'total_gives_base', default=Decimal('0')),
        total_client_receives_base=parse_amount(data.get('total_receives_base'), 'total_receives_base', default=Decimal('0')),
        profit_amount=parse_amount(data.get('profit'), 'profit', default=Decimal('0')),
        profit_currency=base,
        client_name=data.get('client_name'),
        client_phone=data.get('client_phone'),
        contact_id=client.id if client else None,
        beneficiary_contact_id=data.get('beneficiary_contact_id'),
        handover_contact_id=data.get('handover_contact_id'),
        followup_at=parse_datetime(data.get('followup_at'), 'followup_at'),
        followup_note=data.get('followup_note'),
        rates_snapshot={'base_currency': base, 'rates': _snapshot_rates(data.get('rates')), 'captured_at': now.isoformat()},
        visibility_mode=visibility,
        allowed_role_codes=list(data.get('allowed_role_codes') or []),
        created_by=created_by,
        completed_at=now,
    )
    session.add(op)
    session.flush()
    op.operation_number = operation_number(op.id, now)

    for i, p in enumerate(participants_in):
        if not isinstance(p, dict):
            abort(400, description=f'participants[{i}] invalid')
        role = validate_status(p.get('role'), ClientExchangeParticipant.ALL_ROLES, f'participants[{i}].role')
        contact = _resolve_contact(session, company_id, p.get('contact_id'), p.get('contact_name'), p.get('contact_phone'), created_by)
        if contact is None:
            abort(400, description=f'participants[{i}] needs contact_id or contact_name')
        op.participants.append(ClientExchangeParticipant(contact_id=contact.id, role=role, note=p.get('note')))

    text = f'Обмен {op.operation_number}'
    for direction, lines in ((ClientExchangeDetail.DIRECTION_GIVE, gives), (ClientExchangeDetail.DIRECTION_RECEIVE, receives)):
        for line in lines:
            cb = get_cashbox_for_update(session, line['cashbox_id'])
            if cb.company_id != company_id:
                abort(403, description='Company access denied')
            if cb.currency != line['currency']:
                abort(400, description=f'Cashbox {cb.name} currency {cb.currency} does not match {line["currency"]}')
            rate = rates.get((line['currency'], direction), {})
            op.details.append(ClientExchangeDetail(
                direction=direction,
                currency=line['currency'],
                amount=line['amount'],
                applied_rate=rate.get('applied_rate'),
                market_rate=rate.get('market_rate'),
                amount_in_base=rate.get('amount_in_base'),
                cashbox_id=cb.id,
            ))
            if direction == ClientExchangeDetail.DIRECTION_GIVE:
                cashbox_operation(session, cb, line['amount'], CashboxTransaction.CAT_CLIENT_EXCHANGE_IN, text,
                                  reference_id=op.id, created_by=created_by)
            else:
                cashbox_operation(session, cb, -line['amount'], CashboxTransaction.CAT_CLIENT_EXCHANGE_OUT, text,
                                  reference_id=op.id, created_by=created_by)

    if client:
        log_contact_event(session, client.id, MODULE, 'client_exchange', op.id, text,
                          {'operation_number': op.operation_number, 'base_currency': base,
                           'profit': str(op.profit_amount)})
    add_audit('exchange_submit', 'ClientExchangeOperation', op.id,
              {'operation_number': op.operation_number, 'lines': len(op.details)}, module=MODULE, company_id=company_id)
    session.flush()
    return op


def cancel_exchange(session, op: ClientExchangeOperation, reason: Optional[str], cancelled_by: int) -> ClientExchangeOperation:
    if op.status == ClientExchangeOperation.STATUS_CANCELLED:
        abort(400, description='Operation already cancelled')
    text = f'Отмена обмена {op.operation_number}'
    for d in op.details:
        cb = get_cashbox_for_update(session, d.cashbox_id, allow_archived=True)
        if d.direction == ClientExchangeDetail.DIRECTION_GIVE:
            cashbox_operation(session, cb, -Decimal(d.amount), CashboxTransaction.CAT_CLIENT_EXCHANGE_OUT, text,
                              reference_id=op.id, created_by=cancelled_by)
        else:
            cashbox_operation(session, cb, Decimal(d.amount), CashboxTransaction.CAT_CLIENT_EXCHANGE_IN, text,
                              reference_id=op.id, created_by=cancelled_by)
    op.status = ClientExchangeOperation.STATUS_CANCELLED
    op.cancelled_at = utcnow()
    op.cancelled_by = cancelled_by
    op.cancel_reason = reason
    if op.contact_id:
        log_contact_event(session, op.contact_id, MODULE, 'client_exchange', op.id, text, {'reason': reason})
    session.flush()
    return op


def set_followup(session, op: ClientExchangeOperation, followup_at, note: Optional[str]) -> ClientExchangeOperation:
    op.followup_at = followup_at
    op.followup_note = note
    session.flush()
    return op
