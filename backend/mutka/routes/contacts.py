from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.filters import truthy_flag
from mutka.utils.dates import iso
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies, has_permissions
from mutka.services.contacts import (
    build_display_name, clean_phones, set_primary_phone, primary_phone, mask_phone, mask_email, search_filter,
)
from mutka.models.contact import Contact, ContactEvent
from mutka import get_db

contacts_bp = Blueprint('contacts', __name__)

CONTACT_SEARCH_LIMIT = 20
EDITABLE = ('first_name', 'last_name', 'nickname', 'organization', 'email', 'notes')


def _contact_json(c: Contact, sensitive: bool = False):
    phone = primary_phone(c)
    extra = list(c.extra_phones or [])
    email = c.email
    if not sensitive:
        phone = mask_phone(phone)
        extra = [mask_phone(p) for p in extra]
        email = mask_email(email)
    return {
        'id': c.id,
        'company_id': c.company_id,
        'display_name': c.display_name,
        'first_name': c.first_name,
        'last_name': c.last_name,
        'nickname': c.nickname,
        'organization': c.organization,
        'phone': phone,
        'extra_phones': extra,
        'email': email,
        'notes': c.notes,
        'source_module': c.source_module,
        'is_archived': c.is_archived,
    }


def _event_json(ev: ContactEvent):
    return {
        'id': ev.id,
        'module': ev.module,
        'entity_type': ev.entity_type,
        'entity_id': ev.entity_id,
        'title': ev.title,
        'payload': ev.payload or {},
        'created_at': iso(ev.created_at),
    }


def _get_contact(contact_id: int) -> Contact:
    c = get_db().get(Contact, contact_id)
    if not c:
        abort(404)
    assert_company_access(c.company_id)
    return c


def _apply_fields(c: Contact, data: dict):
    for key in EDITABLE:
        if key in data:
            val = data[key]
            setattr(c, key, val.strip() if isinstance(val, str) else val)
    if 'extra_phones' in data:
        c.extra_phones = clean_phones(data['extra_phones'])
    if 'is_archived' in data:
        c.is_archived = bool(data['is_archived'])
    c.display_name = build_display_name(c.first_name, c.last_name, c.nickname, c.organization)


@contacts_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('CONTACTS.READ')
def list_contacts():
    q = scope_to_companies(get_db().query(Contact), Contact.company_id)
    if not truthy_flag(request.args, 'include_archived'):
        q = q.filter(Contact.is_archived.is_(False))
    term = (request.args.get('q') or '').strip()
    if term:
        q = search_filter(q, term)
    q = q.order_by(Contact.display_name.asc(), Contact.id.asc())
    sensitive = has_permissions('CONTACTS.SENSITIVE.READ')
    return list_response(q, lambda c: _contact_json(c, sensitive), default_limit=CONTACT_SEARCH_LIMIT)


@contacts_bp.route('/<int:contact_id>', methods=['GET', 'HEAD'])
@require_permissions('CONTACTS.READ')
def get_contact(contact_id: int):
    session = get_db()
    c = _get_contact(contact_id)
    body = _contact_json(c, has_permissions('CONTACTS.SENSITIVE.READ'))
    body['channels'] = [
        {'id': ch.id, 'type': ch.type, 'is_primary': ch.is_primary,
         'value': ch.value if has_permissions('CONTACTS.SENSITIVE.READ') else mask_phone(ch.value)}
        for ch in c.channels
    ]
    events = session.execute(
        select(ContactEvent).where(ContactEvent.contact_id == c.id).order_by(ContactEvent.id.desc())
    ).scalars().all()
    body['events'] = [_event_json(ev) for ev in events]
    return single_response(body, c.updated_at)


@contacts_bp.post('')
@require_permissions('CONTACTS.WRITE')
@audit_log('CONTACT.CREATE', module='contacts', entity='Contact', entity_id_key='id', meta_keys=['display_name'])
def create_contact():
    session = get_db()
    data = request.get_json(silent=True) or {}
    c = Contact(company_id=current_company_id(), created_by=current_user_id(), extra_phones=[],
                source_module=data.get('source_module') or 'contacts')
    _apply_fields(c, data)
    session.add(c)
    set_primary_phone(session, c, data.get('phone'))
    session.commit()
    return _contact_json(c, sensitive=True), 201


@contacts_bp.put('/<int:contact_id>')
@require_permissions('CONTACTS.WRITE')
@audit_log('CONTACT.UPDATE', module='contacts', entity='Contact', entity_id_key='id',
           diff_keys=['display_name', 'organization', 'phone', 'email', 'is_archived'],
           pre_fetch=lambda a, kw: _contact_json(_get_contact(kw['contact_id']), sensitive=True))
def update_contact(contact_id: int):
    session = get_db()
    c = _get_contact(contact_id)
    data = request.get_json(silent=True) or {}
    _apply_fields(c, data)
    if 'phone' in data:
        set_primary_phone(session, c, data.get('phone'))
    session.commit()
    return _contact_json(c, sensitive=True)
