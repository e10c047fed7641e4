"""Registries for the OpenAPI spec builder.

Ordering here is the ordering of the generated document; keep it stable.
"""
from typing import Dict, List, Tuple

# (SchemaName, list path, id param, read permission)
ENTITIES: List[Tuple[str, str, str, str]] = [
    ("Cashbox", "/cash/cashboxes", "cashbox_id", "CASH.READ"),
    ("ExchangeLog", "/fx/exchanges", "log_id", "FX.READ"),
    ("ClientExchangeOperation", "/exchange/operations", "op_id", "CLX.READ"),
    ("Contact", "/contacts", "contact_id", "CONTACTS.READ"),
    ("Car", "/auto/cars", "car_id", "AUTO.READ"),
    ("AutoDeal", "/auto/deals", "deal_id", "DEALS.READ"),
    ("StockItem", "/stock/items", "item_id", "STOCK.READ"),
    ("Employee", "/hr/employees", "emp_id", "HR.READ"),
    ("Asset", "/assets", "asset_id", "ASSETS.READ"),
    ("FinanceDeal", "/finance/deals", "deal_id", "FIN.READ"),
]

# Create endpoints (POST on the list path)
CREATE_PERMISSIONS: Dict[str, str] = {
    "Cashbox": "CASH.MANAGE",
    "ClientExchangeOperation": "CLX.CREATE",
    "Contact": "CONTACTS.WRITE",
    "Car": "AUTO.MANAGE",
    "AutoDeal": "DEALS.CREATE",
    "StockItem": "STOCK.MANAGE",
    "Employee": "HR.MANAGE",
    "Asset": "ASSETS.MANAGE",
    "FinanceDeal": "FIN.MANAGE",
}

# Collections without a single-resource endpoint: (SchemaName, path, read permission)
LIST_ONLY: List[Tuple[str, str, str]] = [
    ("CashboxLocation", "/cash/locations", "CASH.READ"),
    ("CashboxTransaction", "/cash/transactions", "CASH.READ"),
    ("StockMovement", "/stock/movements", "STOCK.READ"),
    ("Permission", "/iam/permissions", "ADMIN.ROLE.MANAGE"),
    ("Role", "/iam/roles", "ADMIN.ROLE.MANAGE"),
    ("AuditLog", "/iam/audit/logs", "ADMIN.SETTINGS.MANAGE"),
    ("CompanyInvite", "/platform/invites", "PLATFORM.ADMIN"),
    ("Metric", "/reports/metrics", "RPT.READ"),
]

# State-changing POST endpoints under the single-resource path.
ACTION_REGISTRY: Dict[str, List[Dict[str, str]]] = {
    "Cashbox": [
        {"action": "archive", "summary": "Archive cashbox", "permission": "CASH.MANAGE"},
        {"action": "unarchive", "summary": "Unarchive cashbox", "permission": "CASH.MANAGE"},
        {"action": "deposit", "summary": "Deposit into cashbox", "permission": "CASH.OPERATE"},
        {"action": "withdraw", "summary": "Withdraw from cashbox", "permission": "CASH.OPERATE"},
    ],
    "ClientExchangeOperation": [
        {"action": "cancel", "summary": "Cancel exchange operation", "permission": "CLX.CANCEL"},
        {"action": "followup", "summary": "Set follow-up reminder", "permission": "CLX.CREATE"},
    ],
    "Car": [
        {"action": "status", "summary": "Change car status", "permission": "AUTO.MANAGE"},
        {"action": "expenses", "summary": "Record car expense", "permission": "AUTO.MANAGE"},
    ],
    "AutoDeal": [
        {"action": "payments", "summary": "Record deal payment or refund", "permission": "DEALS.PAY"},
        {"action": "complete", "summary": "Complete deal", "permission": "DEALS.MANAGE"},
        {"action": "cancel", "summary": "Cancel deal", "permission": "DEALS.MANAGE"},
    ],
    "StockItem": [
        {"action": "operations", "summary": "Purchase, write off or adjust stock", "permission": "STOCK.OPERATE"},
    ],
    "Employee": [
        {"action": "deactivate", "summary": "Deactivate employee", "permission": "HR.MANAGE"},
        {"action": "roles", "summary": "Add role to employee", "permission": "HR.MANAGE"},
        {"action": "apply-position-roles", "summary": "Apply position default roles", "permission": "HR.MANAGE"},
        {"action": "invites", "summary": "Invite employee", "permission": "HR.MANAGE"},
        {"action": "salary", "summary": "Record salary operation", "permission": "HR.SALARY"},
    ],
    "Asset": [
        {"action": "valuations", "summary": "Add asset valuation", "permission": "ASSETS.MANAGE"},
        {"action": "moves", "summary": "Move asset", "permission": "ASSETS.MANAGE"},
    ],
    "FinanceDeal": [
        {"action": "status", "summary": "Change deal status", "permission": "FIN.MANAGE"},
        {"action": "schedule/regenerate", "summary": "Regenerate payment schedule", "permission": "FIN.MANAGE"},
        {"action": "pauses", "summary": "Pause deal", "permission": "FIN.MANAGE"},
        {"action": "ledger", "summary": "Add ledger entry", "permission": "FIN.LEDGER"},
        {"action": "participants", "summary": "Add participant", "permission": "FIN.MANAGE"},
        {"action": "collateral", "summary": "Link collateral", "permission": "FIN.MANAGE"},
        {"action": "default", "summary": "Default deal and foreclose collateral", "permission": "FIN.MANAGE"},
    ],
}

# Non-entity endpoints: (path, method, summary, permission or None)
EXTRA_OPERATIONS: List[Tuple[str, str, str, object]] = [
    ("/iam/auth/login", "post", "Login", None),
    ("/iam/auth/me", "get", "Current user", None),
    ("/iam/companies/me", "get", "My memberships", None),
    ("/iam/roles", "post", "Create role", "ADMIN.ROLE.MANAGE"),
    ("/iam/roles/{role_id}/permissions", "put", "Replace role permissions", "ADMIN.ROLE.MANAGE"),
    ("/iam/users/{user_id}/roles", "put", "Replace user roles", "ADMIN.USER.MANAGE"),
    ("/platform/view-as", "post", "Start read-only view-as session", "PLATFORM.ADMIN"),
    ("/platform/view-as", "get", "Current view-as session", None),
    ("/platform/view-as", "delete", "Stop view-as session", None),
    ("/platform/invites", "post", "Create company invite", "PLATFORM.ADMIN"),
    ("/platform/invites/accept", "post", "Accept company invite", None),
    ("/cash/transfers", "post", "Transfer between cashboxes", "CASH.OPERATE"),
    ("/fx/rates", "get", "All currency rates", "FX.READ"),
    ("/fx/rates/refresh", "post", "Refresh rates from providers", "FX.RATES.MANAGE"),
    ("/fx/rates/external", "post", "Fetch an external rate", "FX.READ"),
    ("/fx/system-rates", "get", "System rates", "FX.READ"),
    ("/fx/system-rates/refresh", "post", "Refresh system rates", "FX.RATES.MANAGE"),
    ("/fx/exchanges", "post", "Exchange between cashboxes", "FX.EXCHANGE"),
    ("/auto/cars/purchase", "post", "Purchase car", "AUTO.MANAGE"),
    ("/finance/collateral/{link_id}/replace", "post", "Replace collateral", "FIN.MANAGE"),
    ("/finance/collateral/{link_id}/release", "post", "Release collateral", "FIN.MANAGE"),
    ("/reports/balances", "get", "Cashbox balances per currency", "CASH.READ"),
]

SORT_DETAILS: Dict[str, str] = {
    "Cashbox": "Multi-field sort (name,currency,balance,type,updated_at,id). Prefix - for desc",
    "CashboxTransaction": "Multi-field sort (created_at,amount,category,id). Prefix - for desc",
    "ExchangeLog": "Multi-field sort (id,sent_amount,updated_at). Prefix - for desc",
    "ClientExchangeOperation": "Multi-field sort (id,completed_at,profit_amount,status). Prefix - for desc",
    "Car": "Multi-field sort (id,brand,year,status,cost_price,updated_at). Prefix - for desc",
    "AutoDeal": "Multi-field sort (id,status,total_amount,updated_at). Prefix - for desc",
    "StockItem": "Multi-field sort (name,sku,quantity,id). Prefix - for desc",
    "Employee": "Multi-field sort (id,full_name,salary_balance). Prefix - for desc",
    "Asset": "Multi-field sort (id,name,status,asset_type). Prefix - for desc",
    "FinanceDeal": "Multi-field sort (id,title,status,principal_amount,start_date). Prefix - for desc",
}

__all__ = [
    "ENTITIES",
    "CREATE_PERMISSIONS",
    "LIST_ONLY",
    "ACTION_REGISTRY",
    "EXTRA_OPERATIONS",
    "SORT_DETAILS",
]
