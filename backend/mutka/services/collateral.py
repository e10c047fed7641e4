"""Collateral links between finance deals and assets."""
from __future__ import annotations
from decimal import Decimal
from typing import List, Optional
from flask import abort
from sqlalchemy import select, func
from mutka.models.asset import Asset, AssetValuation
from mutka.models.finance import CoreDeal, CollateralLink, CollateralChain, FinanceLedgerEntry
from mutka.services import finance_engine
from mutka.services.finance_math import r2
from mutka.utils.dates import utcnow, today


def latest_valuation(session, asset_id: int) -> Optional[AssetValuation]:
    return session.execute(
        select(AssetValuation)
        .where(AssetValuation.asset_id == asset_id)
        .order_by(AssetValuation.valued_at.desc(), AssetValuation.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def active_links(session, finance_deal_id: int) -> List[CollateralLink]:
    return session.execute(
        select(CollateralLink)
        .where(CollateralLink.finance_deal_id == finance_deal_id, CollateralLink.status == CollateralLink.STATUS_ACTIVE)
        .order_by(CollateralLink.id)
    ).scalars().all()


def _other_active_links(session, asset_id: int, exclude_link_id: int) -> int:
    return session.execute(
        select(func.count(CollateralLink.id)).where(
            CollateralLink.asset_id == asset_id,
            CollateralLink.status == CollateralLink.STATUS_ACTIVE,
            CollateralLink.id != exclude_link_id,
        )
    ).scalar_one()


def _pledge(session, core: CoreDeal, asset: Asset, note: Optional[str]) -> CollateralLink:
    if asset.company_id != core.company_id:
        abort(400, description='Asset belongs to another company')
    if asset.status != Asset.STATUS_ACTIVE:
        abort(400, description=f'Asset is {asset.status}, only active assets can be pledged')
    link = CollateralLink(finance_deal_id=core.finance.id, asset_id=asset.id, status=CollateralLink.STATUS_ACTIVE,
                          pledged_units=asset.units or 1, note=note)
    asset.status = Asset.STATUS_PLEDGED
    asset.pledged_units = asset.units or 1
    session.add(link)
    session.flush()
    return link


def _unpledge(session, link: CollateralLink, asset: Asset):
    # the asset stays pledged while another deal still holds it
    if _other_active_links(session, asset.id, link.id) == 0:
        asset.status = Asset.STATUS_ACTIVE
        asset.pledged_units = 0


def link_collateral(session, core: CoreDeal, asset: Asset, note: Optional[str] = None) -> CollateralLink:
    if core.status in (CoreDeal.STATUS_CLOSED, CoreDeal.STATUS_CANCELLED):
        abort(400, description=f'Deal is {core.status}')
    return _pledge(session, core, asset, note)


def get_link(session, link_id: int) -> CollateralLink:
    link = session.get(CollateralLink, link_id)
    if not link:
        abort(404, description='Collateral link not found')
    return link


def _require_active(link: CollateralLink):
    if link.status != CollateralLink.STATUS_ACTIVE:
        abort(400, description=f'Collateral link is {link.status}')


def release_collateral(session, link: CollateralLink) -> CollateralLink:
    _require_active(link)
    link.status = CollateralLink.STATUS_RELEASED
    link.released_at = utcnow()
    _unpledge(session, link, session.get(Asset, link.asset_id))
    session.flush()
    return link


def replace_collateral(session, core: CoreDeal, link: CollateralLink, new_asset: Asset, reason: Optional[str] = None,
                       created_by: Optional[int] = None) -> CollateralLink:
    _require_active(link)
    if new_asset.id == link.asset_id:
        abort(400, description='Replacement asset must differ')
    link.status = CollateralLink.STATUS_REPLACED
    link.released_at = utcnow()
    _unpledge(session, link, session.get(Asset, link.asset_id))
    new_link = _pledge(session, core, new_asset, reason)
    session.add(CollateralChain(finance_deal_id=core.finance.id, old_link_id=link.id, new_link_id=new_link.id,
                                reason=reason, created_by=created_by))
    session.flush()
    return new_link


def evaluate_collateral(session, core: CoreDeal) -> dict:
    items = []
    total = Decimal('0')
    for link in active_links(session, core.finance.id):
        asset = session.get(Asset, link.asset_id)
        val = latest_valuation(session, link.asset_id)
        amount = Decimal(val.base_amount) if val else Decimal('0')
        total += amount
        items.append({
            'link_id': link.id,
            'asset_id': link.asset_id,
            'asset_name': asset.name if asset else None,
            'valuation': amount,
            'base_currency': val.base_currency if val else None,
            'valued_at': val.valued_at if val else None,
        })
    outstanding = finance_engine.deal_balances(session, core.finance)['outstanding_principal']
    ltv = r2(outstanding / total * 100) if total > 0 else None
    return {'items': items, 'total_valuation': r2(total), 'outstanding': outstanding, 'ltv': ltv}


def default_deal(session, core: CoreDeal, created_by: Optional[int] = None) -> List[FinanceLedgerEntry]:
    finance_engine.set_status(core, CoreDeal.STATUS_DEFAULT)
    proceeds = []
    for link in active_links(session, core.finance.id):
        link.status = CollateralLink.STATUS_FORECLOSED
        link.released_at = utcnow()
        asset = session.get(Asset, link.asset_id)
        asset.status = Asset.STATUS_FORECLOSED
        val = latest_valuation(session, asset.id)
        if val and Decimal(val.base_amount) > 0:
            entry = FinanceLedgerEntry(finance_deal_id=core.finance.id, entry_type='collateral_sale_proceeds',
                                       amount=val.base_amount, currency=val.base_currency, entry_date=today(),
                                       asset_id=asset.id, note=f'Foreclosure: {asset.name}', created_by=created_by)
            session.add(entry)
            proceeds.append(entry)
    session.flush()
    return proceeds
