from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from sqlalchemy import select
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters
from mutka.utils.validation import parse_amount, parse_id, validate_currency, validate_status, require_fields, money
from mutka.utils.dates import parse_date, iso, today
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies
from mutka.services import finance_engine as engine
from mutka.services import collateral as collateral_svc
from mutka.models.finance import (
    CoreDeal, FinanceDeal, FinanceScheduleRow, FinancePause, FinanceLedgerEntry, FinanceParticipant, CollateralLink,
)
from mutka.models.asset import Asset
from mutka.models.contact import Contact
from mutka.constants.currencies import SUPPORTED_CURRENCIES
from mutka import get_db

fin_bp = Blueprint('finance', __name__)


def _deal_json(core: CoreDeal):
    fd = core.finance
    body = {
        'id': core.id,
        'company_id': core.company_id,
        'deal_number': core.deal_number,
        'kind': core.kind,
        'title': core.title,
        'status': core.status,
        'contact_id': core.contact_id,
        'created_by': core.created_by,
        'updated_at': iso(core.updated_at),
    }
    if fd is not None:
        body.update({
            'finance_deal_id': fd.id,
            'principal_amount': money(fd.principal_amount),
            'contract_currency': fd.contract_currency,
            'term_months': fd.term_months,
            'rate_percent': money(fd.rate_percent),
            'schedule_type': fd.schedule_type,
            'start_date': iso(fd.start_date),
        })
    return body


def _schedule_json(r: FinanceScheduleRow):
    return {
        'id': r.id,
        'period': r.period,
        'due_date': iso(r.due_date),
        'principal_due': money(r.principal_due),
        'interest_due': money(r.interest_due),
        'total_due': money(r.total_due),
        'currency': r.currency,
        'status': r.status,
    }


def _pause_json(p: FinancePause):
    return {'id': p.id, 'start_date': iso(p.start_date), 'end_date': iso(p.end_date), 'reason': p.reason,
            'created_by': p.created_by}


def _ledger_json(e: FinanceLedgerEntry):
    return {
        'id': e.id,
        'entry_type': e.entry_type,
        'amount': money(e.amount),
        'currency': e.currency,
        'entry_date': iso(e.entry_date),
        'cashbox_id': e.cashbox_id,
        'asset_id': e.asset_id,
        'note': e.note,
        'created_by': e.created_by,
    }


def _participant_json(p: FinanceParticipant):
    return {'id': p.id, 'role': p.role, 'contact_id': p.contact_id, 'employee_id': p.employee_id, 'note': p.note}


def _link_json(link: CollateralLink):
    return {
        'id': link.id,
        'finance_deal_id': link.finance_deal_id,
        'asset_id': link.asset_id,
        'status': link.status,
        'pledged_units': link.pledged_units,
        'note': link.note,
        'started_at': iso(link.started_at),
        'released_at': iso(link.released_at),
    }


def _money_dict(values: dict) -> dict:
    return {k: money(v) if isinstance(v, Decimal) else v for k, v in values.items()}


def _get_deal(deal_id: int) -> CoreDeal:
    core = get_db().get(CoreDeal, deal_id)
    if not core or core.finance is None:
        abort(404)
    assert_company_access(core.company_id)
    return core


def _get_asset(asset_id) -> Asset:
    try:
        asset = get_db().get(Asset, int(asset_id))
    except (TypeError, ValueError):
        asset = None
    if not asset:
        abort(400, description='asset_id invalid')
    assert_company_access(asset.company_id)
    return asset


def _get_link(link_id: int) -> CollateralLink:
    link = collateral_svc.get_link(get_db(), link_id)
    core = get_db().get(CoreDeal, get_db().get(FinanceDeal, link.finance_deal_id).core_deal_id)
    assert_company_access(core.company_id)
    return link


def _check_contact(company_id: int, contact_id):
    if contact_id in (None, ''):
        return None
    contact = get_db().get(Contact, parse_id(contact_id, 'contact_id'))
    if not contact or contact.company_id != company_id:
        abort(400, description='contact_id invalid')
    return contact.id


@fin_bp.route('/deals', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_deals():
    q = scope_to_companies(get_db().query(CoreDeal), CoreDeal.company_id).outerjoin(
        FinanceDeal, FinanceDeal.core_deal_id == CoreDeal.id)
    specs = {
        'status': {'op': lambda q, v: q.filter(CoreDeal.status == v), 'validate': lambda v: v in CoreDeal.ALL_STATUSES},
        'kind': {'op': lambda q, v: q.filter(CoreDeal.kind == v)},
        'contact_id': {'op': lambda q, v: q.filter(CoreDeal.contact_id == v), 'coerce': int},
        'schedule_type': {'op': lambda q, v: q.filter(FinanceDeal.schedule_type == v),
                          'validate': lambda v: v in FinanceDeal.ALL_SCHEDULE_TYPES},
        'currency': {'op': lambda q, v: q.filter(FinanceDeal.contract_currency == v.upper())},
        'q': {'op': lambda q, v: q.filter(CoreDeal.title.ilike(f'%{v}%') | CoreDeal.deal_number.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': CoreDeal.id, 'title': CoreDeal.title, 'status': CoreDeal.status,
               'principal_amount': FinanceDeal.principal_amount, 'start_date': FinanceDeal.start_date}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, CoreDeal.id, default=[CoreDeal.id.desc()])
    return list_response(q, _deal_json)


@fin_bp.route('/deals/<int:deal_id>', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def get_deal(deal_id: int):
    core = _get_deal(deal_id)
    return single_response(_deal_json(core), core.updated_at)


@fin_bp.post('/deals')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.DEAL.CREATE', module='finance', entity='CoreDeal', entity_id_key='id',
           meta_keys=['deal_number', 'principal_amount', 'contract_currency', 'schedule_type'])
def create_deal():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'title', 'principal_amount', 'term_months')
    company_id = current_company_id()
    try:
        term = int(data['term_months'])
    except (TypeError, ValueError):
        abort(400, description='term_months invalid')
    core = engine.create_finance_deal(
        session, company_id,
        title=str(data['title']).strip(),
        principal=parse_amount(data.get('principal_amount'), 'principal_amount', positive=True),
        currency=validate_currency(data.get('contract_currency') or 'USD', SUPPORTED_CURRENCIES, 'contract_currency'),
        term_months=term,
        rate_percent=parse_amount(data.get('rate_percent'), 'rate_percent', non_negative=True, default=Decimal('0')),
        schedule_type=data.get('schedule_type') or FinanceDeal.SCHEDULE_ANNUITY,
        start_date=parse_date(data.get('start_date'), 'start_date') or today(),
        contact_id=_check_contact(company_id, data.get('contact_id')),
        created_by=current_user_id(),
    )
    session.commit()
    return _deal_json(core), 201


@fin_bp.post('/deals/<int:deal_id>/status')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.DEAL.STATUS', module='finance', entity='CoreDeal', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _deal_json(_get_deal(kw['deal_id'])))
def set_status(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    status = validate_status(data.get('status'), CoreDeal.ALL_STATUSES)
    if status == CoreDeal.STATUS_DEFAULT:
        abort(400, description='Use the default endpoint to foreclose a deal')
    engine.set_status(core, status)
    session.commit()
    return _deal_json(core)


@fin_bp.route('/deals/<int:deal_id>/schedule', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_schedule(deal_id: int):
    core = _get_deal(deal_id)
    rows = get_db().execute(
        select(FinanceScheduleRow).where(FinanceScheduleRow.finance_deal_id == core.finance.id)
        .order_by(FinanceScheduleRow.period)
    ).scalars().all()
    return {'deal_id': core.id, 'data': [_schedule_json(r) for r in rows]}


@fin_bp.post('/deals/<int:deal_id>/schedule/regenerate')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.SCHEDULE.REGENERATE', module='finance', entity='CoreDeal', entity_id_arg='deal_id', meta_keys=['rows'])
def regenerate(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    count = engine.regenerate_schedule(session, core.finance)
    session.commit()
    return {'deal_id': core.id, 'rows': count}


@fin_bp.route('/deals/<int:deal_id>/pauses', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_pauses(deal_id: int):
    core = _get_deal(deal_id)
    rows = get_db().execute(
        select(FinancePause).where(FinancePause.finance_deal_id == core.finance.id).order_by(FinancePause.start_date)
    ).scalars().all()
    return {'deal_id': core.id, 'data': [_pause_json(p) for p in rows]}


@fin_bp.post('/deals/<int:deal_id>/pauses')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.DEAL.PAUSE', module='finance', entity='FinancePause', entity_id_key='id',
           meta_keys=['start_date', 'end_date', 'reason'])
def pause(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    p = engine.pause_deal(
        session, core,
        parse_date(data.get('start_date'), 'start_date', required=True),
        parse_date(data.get('end_date'), 'end_date', required=True),
        reason=data.get('reason'), created_by=current_user_id(),
    )
    session.commit()
    body = _pause_json(p)
    body['deal_status'] = core.status
    return body, 201


@fin_bp.post('/deals/<int:deal_id>/pauses/<int:pause_id>/resume')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.DEAL.RESUME', module='finance', entity='FinancePause', entity_id_key='id', meta_keys=['end_date'])
def resume(deal_id: int, pause_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    p = engine.resume_deal(session, core, engine.get_pause(session, core, pause_id))
    session.commit()
    body = _pause_json(p)
    body['deal_status'] = core.status
    return body


@fin_bp.delete('/deals/<int:deal_id>/pauses/<int:pause_id>')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.PAUSE.DELETE', module='finance', entity='FinancePause', entity_id_arg='pause_id')
def remove_pause(deal_id: int, pause_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    engine.delete_pause(session, core, engine.get_pause(session, core, pause_id))
    session.commit()
    return {'deleted': pause_id, 'deal_status': core.status}


@fin_bp.route('/deals/<int:deal_id>/ledger', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_ledger(deal_id: int):
    core = _get_deal(deal_id)
    q = get_db().query(FinanceLedgerEntry).filter(FinanceLedgerEntry.finance_deal_id == core.finance.id)
    q = apply_filters(q, {'entry_type': {'op': lambda q, v: q.filter(FinanceLedgerEntry.entry_type == v),
                                         'validate': lambda v: v in FinanceLedgerEntry.ENTRY_TYPES}}, request.args)
    q = q.order_by(FinanceLedgerEntry.entry_date.desc(), FinanceLedgerEntry.id.desc())
    return list_response(q, _ledger_json, ts_attr='created_at')


@fin_bp.post('/deals/<int:deal_id>/ledger')
@require_permissions('FIN.LEDGER')
@audit_log('FIN.LEDGER.ADD', module='finance', entity='FinanceLedgerEntry', entity_id_key='id',
           meta_keys=['entry_type', 'amount', 'currency', 'cashbox_id'])
def add_ledger(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    entry = engine.add_ledger_entry(
        session, core,
        entry_type=validate_status(data.get('entry_type'), FinanceLedgerEntry.ENTRY_TYPES, 'entry_type'),
        amount=parse_amount(data.get('amount'), positive=True),
        currency=validate_currency(data.get('currency') or core.finance.contract_currency, SUPPORTED_CURRENCIES),
        entry_date=parse_date(data.get('entry_date'), 'entry_date'),
        note=data.get('note'),
        cashbox_id=data.get('cashbox_id'),
        created_by=current_user_id(),
    )
    session.commit()
    return _ledger_json(entry), 201


@fin_bp.route('/deals/<int:deal_id>/participants', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_participants(deal_id: int):
    core = _get_deal(deal_id)
    rows = get_db().execute(
        select(FinanceParticipant).where(FinanceParticipant.finance_deal_id == core.finance.id)
        .order_by(FinanceParticipant.id)
    ).scalars().all()
    return {'deal_id': core.id, 'data': [_participant_json(p) for p in rows]}


@fin_bp.post('/deals/<int:deal_id>/participants')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.PARTICIPANT.ADD', module='finance', entity='FinanceParticipant', entity_id_key='id',
           meta_keys=['role', 'contact_id', 'employee_id'])
def add_participant(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    p = engine.add_participant(
        session, core, role=data.get('role'),
        contact_id=_check_contact(core.company_id, data.get('contact_id')),
        employee_id=data.get('employee_id'), note=data.get('note'),
    )
    session.commit()
    return _participant_json(p), 201


@fin_bp.delete('/deals/<int:deal_id>/participants/<int:participant_id>')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.PARTICIPANT.REMOVE', module='finance', entity='FinanceParticipant', entity_id_arg='participant_id')
def remove_participant(deal_id: int, participant_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    engine.remove_participant(session, core, participant_id)
    session.commit()
    return {'deleted': participant_id}


@fin_bp.get('/deals/<int:deal_id>/summary')
@require_permissions('FIN.READ')
def summary(deal_id: int):
    core = _get_deal(deal_id)
    s = engine.get_deal_summary(get_db(), core)
    s['balances'] = _money_dict(s['balances'])
    s['unpaid_interest'] = money(s['unpaid_interest'])
    s['total_owed'] = money(s['total_owed'])
    s['deal_id'] = core.id
    s['status'] = core.status
    return s


@fin_bp.route('/deals/<int:deal_id>/collateral', methods=['GET', 'HEAD'])
@require_permissions('FIN.READ')
def list_collateral(deal_id: int):
    core = _get_deal(deal_id)
    rows = get_db().execute(
        select(CollateralLink).where(CollateralLink.finance_deal_id == core.finance.id).order_by(CollateralLink.id)
    ).scalars().all()
    return {'deal_id': core.id, 'data': [_link_json(link) for link in rows]}


@fin_bp.post('/deals/<int:deal_id>/collateral')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.COLLATERAL.LINK', module='finance', entity='CollateralLink', entity_id_key='id',
           meta_keys=['asset_id', 'finance_deal_id'])
def link_collateral(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    require_fields(data, 'asset_id')
    link = collateral_svc.link_collateral(session, core, _get_asset(data['asset_id']), data.get('note'))
    session.commit()
    return _link_json(link), 201


@fin_bp.get('/deals/<int:deal_id>/collateral/evaluate')
@require_permissions('FIN.READ')
def evaluate_collateral(deal_id: int):
    core = _get_deal(deal_id)
    ev = collateral_svc.evaluate_collateral(get_db(), core)
    items = [dict(_money_dict(i), valued_at=iso(i['valued_at'])) for i in ev['items']]
    return {
        'deal_id': core.id,
        'items': items,
        'total_valuation': money(ev['total_valuation']),
        'outstanding': money(ev['outstanding']),
        'ltv': money(ev['ltv']),
    }


@fin_bp.post('/collateral/<int:link_id>/replace')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.COLLATERAL.REPLACE', module='finance', entity='CollateralLink', entity_id_key='id',
           meta_keys=['replaced_link_id', 'asset_id'])
def replace_collateral(link_id: int):
    session = get_db()
    link = _get_link(link_id)
    data = request.get_json(silent=True) or {}
    require_fields(data, 'new_asset_id')
    core = session.get(CoreDeal, session.get(FinanceDeal, link.finance_deal_id).core_deal_id)
    new_link = collateral_svc.replace_collateral(session, core, link, _get_asset(data['new_asset_id']),
                                                 reason=data.get('reason'), created_by=current_user_id())
    session.commit()
    body = _link_json(new_link)
    body['replaced_link_id'] = link.id
    return body, 201


@fin_bp.post('/collateral/<int:link_id>/release')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.COLLATERAL.RELEASE', module='finance', entity='CollateralLink', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _link_json(_get_link(kw['link_id'])))
def release_collateral(link_id: int):
    session = get_db()
    link = collateral_svc.release_collateral(session, _get_link(link_id))
    session.commit()
    return _link_json(link)


@fin_bp.post('/deals/<int:deal_id>/default')
@require_permissions('FIN.MANAGE')
@audit_log('FIN.DEAL.DEFAULT', module='finance', entity='CoreDeal', entity_id_key='id', meta_keys=['proceeds'])
def default_deal(deal_id: int):
    session = get_db()
    core = _get_deal(deal_id)
    proceeds = collateral_svc.default_deal(session, core, created_by=current_user_id())
    session.commit()
    body = _deal_json(core)
    body['proceeds'] = [_ledger_json(e) for e in proceeds]
    return body
