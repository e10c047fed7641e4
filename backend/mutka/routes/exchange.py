from __future__ import annotations
from flask import Blueprint, request, abort
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.filters import apply_filters
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.validation import money
from mutka.utils.dates import iso, parse_datetime, parse_date, start_of_day, end_of_day
from mutka.services.policy import (
    current_company_id, current_user_id, assert_company_access, scope_to_companies,
    can_view_by_visibility, current_role_names, is_god_mode,
)
from mutka.services.client_exchange import submit_exchange, cancel_exchange, set_followup
from mutka.models.client_exchange import ClientExchangeOperation, ClientExchangeDetail, ClientExchangeParticipant
from mutka import get_db

clx_bp = Blueprint('client_exchange', __name__)


def _detail_json(d: ClientExchangeDetail):
    return {
        'id': d.id,
        'direction': d.direction,
        'currency': d.currency,
        'amount': money(d.amount),
        'applied_rate': money(d.applied_rate),
        'market_rate': money(d.market_rate),
        'amount_in_base': money(d.amount_in_base),
        'cashbox_id': d.cashbox_id,
    }


def _participant_json(p: ClientExchangeParticipant):
    return {'id': p.id, 'contact_id': p.contact_id, 'role': p.role, 'note': p.note}


def _op_json(op: ClientExchangeOperation):
    return {
        'id': op.id,
        'company_id': op.company_id,
        'operation_number': op.operation_number,
        'status': op.status,
        'base_currency': op.base_currency,
        'total_client_gives_base': money(op.total_client_gives_base),
        'total_client_receives_base': money(op.total_client_receives_base),
        'profit_amount': money(op.profit_amount),
        'profit_currency': op.profit_currency,
        'client_name': op.client_name,
        'client_phone': op.client_phone,
        'contact_id': op.contact_id,
        'beneficiary_contact_id': op.beneficiary_contact_id,
        'handover_contact_id': op.handover_contact_id,
        'followup_at': iso(op.followup_at),
        'followup_note': op.followup_note,
        'visibility_mode': op.visibility_mode,
        'allowed_role_codes': op.allowed_role_codes or [],
        'created_by': op.created_by,
        'completed_at': iso(op.completed_at),
        'cancelled_at': iso(op.cancelled_at),
        'cancelled_by': op.cancelled_by,
        'cancel_reason': op.cancel_reason,
    }


def _op_full_json(op: ClientExchangeOperation):
    body = _op_json(op)
    body['rates_snapshot'] = op.rates_snapshot or {}
    body['details'] = [_detail_json(d) for d in op.details]
    body['participants'] = [_participant_json(p) for p in op.participants]
    return body


def _visible(op: ClientExchangeOperation) -> bool:
    return can_view_by_visibility(op.visibility_mode, op.allowed_role_codes, current_role_names(), is_god_mode())


def _get_op(op_id: int) -> ClientExchangeOperation:
    op = get_db().get(ClientExchangeOperation, op_id)
    if not op:
        abort(404)
    assert_company_access(op.company_id)
    if not _visible(op):
        abort(404)
    return op


@clx_bp.route('/operations', methods=['GET', 'HEAD'])
@require_permissions('CLX.READ')
def list_operations():
    q = scope_to_companies(get_db().query(ClientExchangeOperation), ClientExchangeOperation.company_id)
    if not is_god_mode():
        # role intersection needs the JSON list, so restricted rows are checked here
        hidden_ids = [
            op.id for op in q.filter(ClientExchangeOperation.visibility_mode == ClientExchangeOperation.VISIBILITY_RESTRICTED)
            if not _visible(op)
        ]
        if hidden_ids:
            q = q.filter(ClientExchangeOperation.id.notin_(hidden_ids))
    specs = {
        'status': {'op': lambda q, v: q.filter(ClientExchangeOperation.status == v),
                   'validate': lambda v: v in ClientExchangeOperation.ALL_STATUSES},
        'contact_id': {'op': lambda q, v: q.filter(ClientExchangeOperation.contact_id == v), 'coerce': int},
        'date_from': {'op': lambda q, v: q.filter(ClientExchangeOperation.completed_at >= v),
                      'coerce': lambda v: start_of_day(parse_date(v, 'date_from'))},
        'date_to': {'op': lambda q, v: q.filter(ClientExchangeOperation.completed_at <= v),
                    'coerce': lambda v: end_of_day(parse_date(v, 'date_to'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {
        'id': ClientExchangeOperation.id,
        'completed_at': ClientExchangeOperation.completed_at,
        'profit_amount': ClientExchangeOperation.profit_amount,
        'status': ClientExchangeOperation.status,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, ClientExchangeOperation.id,
                         default=[ClientExchangeOperation.id.desc()])
    return list_response(q, _op_json)


@clx_bp.route('/operations/<int:op_id>', methods=['GET', 'HEAD'])
@require_permissions('CLX.READ')
def get_operation(op_id: int):
    op = _get_op(op_id)
    return single_response(_op_full_json(op), op.updated_at)


@clx_bp.post('/operations')
@require_permissions('CLX.CREATE')
def create_operation():
    session = get_db()
    data = request.get_json(silent=True) or {}
    op = submit_exchange(session, current_company_id(), data, current_user_id())
    session.commit()
    return _op_full_json(op), 201


@clx_bp.post('/operations/<int:op_id>/cancel')
@require_permissions('CLX.CANCEL')
@audit_log('exchange_cancel', module='exchange', entity='ClientExchangeOperation', entity_id_key='id',
           diff_keys=['status'], pre_fetch=lambda a, kw: _op_json(_get_op(kw['op_id'])), meta_keys=['cancel_reason'])
def cancel_operation(op_id: int):
    session = get_db()
    op = _get_op(op_id)
    data = request.get_json(silent=True) or {}
    cancel_exchange(session, op, data.get('reason'), current_user_id())
    session.commit()
    return _op_full_json(op)


@clx_bp.post('/operations/<int:op_id>/followup')
@require_permissions('CLX.CREATE')
@audit_log('exchange_followup', module='exchange', entity='ClientExchangeOperation', entity_id_key='id',
           diff_keys=['followup_at', 'followup_note'], pre_fetch=lambda a, kw: _op_json(_get_op(kw['op_id'])))
def followup_operation(op_id: int):
    session = get_db()
    op = _get_op(op_id)
    data = request.get_json(silent=True) or {}
    set_followup(session, op, parse_datetime(data.get('followup_at'), 'followup_at'), data.get('followup_note') or data.get('note'))
    session.commit()
    return _op_json(op)
