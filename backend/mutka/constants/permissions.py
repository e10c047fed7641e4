"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently, add new ones and retire old ones via migration.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['CASH', 'FX', 'CLX', 'CONTACTS', 'AUTO', 'DEALS', 'STOCK', 'HR', 'ASSETS', 'FIN', 'RPT', 'ADMIN']

SERVICE_ACTIONS = {
    'CASH': ['READ', 'MANAGE', 'OPERATE'],
    'FX': ['READ', 'EXCHANGE', 'RATES.MANAGE'],
    'CLX': ['READ', 'CREATE', 'CANCEL'],
    'CONTACTS': ['READ', 'WRITE', 'SENSITIVE.READ'],
    'AUTO': ['READ', 'MANAGE'],
    'DEALS': ['READ', 'CREATE', 'PAY', 'MANAGE'],
    'STOCK': ['READ', 'MANAGE', 'OPERATE'],
    'HR': ['READ', 'MANAGE', 'SALARY'],
    'ASSETS': ['READ', 'MANAGE'],
    'FIN': ['READ', 'MANAGE', 'LEDGER'],
    'RPT': ['READ'],
    'ADMIN': ['USER.MANAGE', 'ROLE.MANAGE', 'SETTINGS.MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# Module access levels, ordered
LEVEL_NONE = 'none'
LEVEL_VIEW = 'view'
LEVEL_WORK = 'work'
LEVEL_MANAGE = 'manage'
ACCESS_LEVELS = (LEVEL_NONE, LEVEL_VIEW, LEVEL_WORK, LEVEL_MANAGE)

MODULES = ('exchange', 'auto', 'deals', 'stock', 'assets', 'finance')

# module -> level -> permission codes granted by the preset role
MODULE_LEVEL_PERMISSIONS: Dict[str, Dict[str, List[str]]] = {
    'exchange': {
        LEVEL_VIEW: ['FX.READ', 'CLX.READ', 'CASH.READ'],
        LEVEL_WORK: ['FX.READ', 'FX.EXCHANGE', 'CLX.READ', 'CLX.CREATE', 'CASH.READ', 'CASH.OPERATE', 'CONTACTS.READ', 'CONTACTS.WRITE'],
        LEVEL_MANAGE: ['FX.READ', 'FX.EXCHANGE', 'FX.RATES.MANAGE', 'CLX.READ', 'CLX.CREATE', 'CLX.CANCEL',
                       'CASH.READ', 'CASH.OPERATE', 'CASH.MANAGE', 'CONTACTS.READ', 'CONTACTS.WRITE', 'CONTACTS.SENSITIVE.READ'],
    },
    'auto': {
        LEVEL_VIEW: ['AUTO.READ'],
        LEVEL_WORK: ['AUTO.READ', 'AUTO.MANAGE', 'STOCK.READ', 'CONTACTS.READ'],
        LEVEL_MANAGE: ['AUTO.READ', 'AUTO.MANAGE', 'STOCK.READ', 'STOCK.OPERATE', 'CASH.READ', 'CASH.OPERATE', 'CONTACTS.READ', 'CONTACTS.WRITE'],
    },
    'deals': {
        LEVEL_VIEW: ['DEALS.READ'],
        LEVEL_WORK: ['DEALS.READ', 'DEALS.CREATE', 'DEALS.PAY', 'CONTACTS.READ'],
        LEVEL_MANAGE: ['DEALS.READ', 'DEALS.CREATE', 'DEALS.PAY', 'DEALS.MANAGE', 'CASH.READ', 'CONTACTS.READ', 'CONTACTS.WRITE'],
    },
    'stock': {
        LEVEL_VIEW: ['STOCK.READ'],
        LEVEL_WORK: ['STOCK.READ', 'STOCK.OPERATE'],
        LEVEL_MANAGE: ['STOCK.READ', 'STOCK.OPERATE', 'STOCK.MANAGE', 'CASH.READ'],
    },
    'assets': {
        LEVEL_VIEW: ['ASSETS.READ'],
        LEVEL_WORK: ['ASSETS.READ', 'ASSETS.MANAGE'],
        LEVEL_MANAGE: ['ASSETS.READ', 'ASSETS.MANAGE', 'CONTACTS.READ'],
    },
    'finance': {
        LEVEL_VIEW: ['FIN.READ', 'CASH.READ'],
        LEVEL_WORK: ['FIN.READ', 'FIN.LEDGER', 'CASH.READ', 'CASH.OPERATE', 'ASSETS.READ'],
        LEVEL_MANAGE: ['FIN.READ', 'FIN.LEDGER', 'FIN.MANAGE', 'CASH.READ', 'CASH.OPERATE', 'CASH.MANAGE', 'ASSETS.READ', 'RPT.READ'],
    },
}


def module_role_name(module: str, level: str) -> str:
    return f"{module.upper()}_{level.upper()}"


def module_preset_roles() -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for module, levels in MODULE_LEVEL_PERMISSIONS.items():
        for level, codes in levels.items():
            out[module_role_name(module, level)] = list(codes)
    return out


ROLE_PRESETS: Dict[str, List[str]] = {
    'Cashier': ['CASH.READ', 'CASH.OPERATE', 'FX.READ', 'FX.EXCHANGE', 'CLX.READ', 'CLX.CREATE', 'CONTACTS.READ', 'CONTACTS.WRITE'],
    'Accountant': ['CASH.READ', 'CASH.MANAGE', 'CASH.OPERATE', 'FX.READ', 'FX.RATES.MANAGE', 'HR.READ', 'HR.SALARY', 'FIN.READ', 'FIN.LEDGER', 'RPT.READ'],
    'Manager': [c for c in ALL_PERMISSION_CODES if not c.startswith('ADMIN.')],
    'ADMIN': ['*'],
    'Owner': ['*'],
} | module_preset_roles()

# Roles which bypass record visibility restrictions
GOD_MODE_ROLES = ('Owner', 'ADMIN')
