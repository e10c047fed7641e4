from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import func, select
from mutka.decorators.auth import require_permissions
from mutka.utils.listing import make_cached_list_response, handle_conditional
from mutka.utils.validation import money
from mutka.utils.dates import parse_date, start_of_day, end_of_day
from mutka.utils.filters import truthy_flag
from mutka.config.settings import normalize_pagination
from mutka.services.policy import current_company_ids
from mutka.models.cashbox import Cashbox, CashboxTransaction
from mutka.models.client_exchange import ClientExchangeOperation
from mutka.models.auto import Car, AutoDeal
from mutka.models.finance import CoreDeal, FinanceDeal
from mutka.models.hr import SalaryOperation
from mutka import get_db

rpt_bp = Blueprint('reports', __name__)

# domain, model, group column, sum column, timestamp column
METRIC_DOMAINS = (
    ('CashboxTransaction', CashboxTransaction, CashboxTransaction.category, CashboxTransaction.amount,
     CashboxTransaction.created_at),
    ('ClientExchangeOperation', ClientExchangeOperation, ClientExchangeOperation.status,
     ClientExchangeOperation.profit_amount, ClientExchangeOperation.updated_at),
    ('Car', Car, Car.status, Car.cost_price, Car.updated_at),
    ('AutoDeal', AutoDeal, AutoDeal.status, AutoDeal.total_amount, AutoDeal.updated_at),
    ('CoreDeal', CoreDeal, CoreDeal.status, FinanceDeal.principal_amount, CoreDeal.updated_at),
    ('SalaryOperation', SalaryOperation, SalaryOperation.operation_type, SalaryOperation.amount,
     SalaryOperation.created_at),
)


def _date_range():
    start = parse_date(request.args.get('start_date'), 'start_date')
    end = parse_date(request.args.get('end_date'), 'end_date')
    if start and end and start > end:
        abort(400, description='start_date must not be after end_date')
    return start, end


def _scoped(q, model, ts_col, company_ids, start, end):
    q = q.filter(model.company_id.in_(company_ids))
    if model is CoreDeal:
        q = q.outerjoin(FinanceDeal, FinanceDeal.core_deal_id == CoreDeal.id)
    if start:
        q = q.filter(ts_col >= start_of_day(start))
    if end:
        q = q.filter(ts_col <= end_of_day(end))
    return q


def _gather_metrics(company_ids, include_financial: bool = False, start=None, end=None):
    session = get_db()
    metrics = []
    latest = []
    for domain, model, group_col, sum_col, ts_col in METRIC_DOMAINS:
        cols = [group_col, func.count(model.id)]
        if include_financial:
            cols.append(func.coalesce(func.sum(sum_col), 0))
        q = _scoped(session.query(*cols).select_from(model), model, ts_col, company_ids, start, end).group_by(group_col)
        for row in q.all():
            item = {'domain': domain, 'status': row[0], 'count': int(row[1])}
            if include_financial:
                item['sum'] = money(row[2])
            metrics.append(item)
        ts = session.execute(
            select(func.max(ts_col)).where(model.company_id.in_(company_ids))
        ).scalar_one_or_none()
        if ts is not None:
            latest.append(ts)
    metrics.sort(key=lambda m: (m['domain'], m.get('status') or ''))
    return metrics, (max(latest) if latest else None)


@rpt_bp.route('/metrics', methods=['GET', 'HEAD'])
@require_permissions('RPT.READ')
def list_metrics():
    start, end = _date_range()
    metrics, latest_ts = _gather_metrics(current_company_ids(), truthy_flag(request.args, 'include_financial'),
                                         start, end)
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    rows = [dict(m, id=f"{m['domain']}:{m['status']}") for m in metrics[offset:offset + limit]]
    resp, etag = make_cached_list_response(rows, len(metrics), limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@rpt_bp.get('/balances')
@require_permissions('CASH.READ')
def balances():
    rows = get_db().execute(
        select(Cashbox.currency, func.coalesce(func.sum(Cashbox.balance), 0), func.count(Cashbox.id))
        .where(Cashbox.company_id.in_(current_company_ids()), Cashbox.is_archived.is_(False))
        .group_by(Cashbox.currency)
        .order_by(Cashbox.currency)
    ).all()
    return {'data': [{'currency': cur, 'balance': money(total), 'cashboxes': int(n)} for cur, total, n in rows]}
