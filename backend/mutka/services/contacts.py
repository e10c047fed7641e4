from __future__ import annotations
import re
from typing import Iterable, List, Optional
from sqlalchemy import func, or_, select
from mutka.models.contact import Contact, ContactChannel, ContactEvent

UNNAMED = 'Без имени'
_NON_DIGITS = re.compile(r'\D+')


def normalize_phone(raw: Optional[str]) -> str:
    return _NON_DIGITS.sub('', raw or '')


def clean_phones(values: Optional[Iterable]) -> List[str]:
    return [str(v).strip() for v in (values or []) if v is not None and str(v).strip()]


def build_display_name(first_name=None, last_name=None, nickname=None, organization=None) -> str:
    name = ' '.join(p.strip() for p in (first_name, last_name) if p and p.strip())
    nick = (nickname or '').strip()
    if name and nick:
        return f'{name} ({nick})'
    if name or nick:
        return name or nick
    return (organization or '').strip() or UNNAMED


def mask_phone(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    digits = normalize_phone(value)
    if len(digits) <= 4:
        return '*' * len(digits)
    return '*' * (len(digits) - 4) + digits[-4:]


def mask_email(value: Optional[str]) -> Optional[str]:
    if not value or '@' not in value:
        return value
    local, domain = value.split('@', 1)
    return f'{local[:1]}***@{domain}'


def primary_phone(contact: Contact) -> Optional[str]:
    for ch in contact.channels:
        if ch.type == ContactChannel.TYPE_PHONE and ch.is_primary:
            return ch.value
    return None


def set_primary_phone(session, contact: Contact, phone: Optional[str]):
    for ch in list(contact.channels):
        if ch.type == ContactChannel.TYPE_PHONE and ch.is_primary:
            contact.channels.remove(ch)
            session.delete(ch)
    phone = (phone or '').strip()
    if phone:
        contact.channels.append(ContactChannel(type=ContactChannel.TYPE_PHONE, value=phone,
                                               normalized=normalize_phone(phone), is_primary=True))


def add_phone(session, contact: Contact, phone: Optional[str]):
    """Record a phone the contact does not have yet; it becomes primary when none is set."""
    digits = normalize_phone(phone)
    if not digits or any(ch.normalized == digits for ch in contact.channels if ch.type == ContactChannel.TYPE_PHONE):
        return
    if primary_phone(contact) is None:
        set_primary_phone(session, contact, phone)
    else:
        contact.channels.append(ContactChannel(type=ContactChannel.TYPE_PHONE, value=phone.strip(),
                                               normalized=digits, is_primary=False))
        contact.extra_phones = list(contact.extra_phones or []) + [phone.strip()]
    session.flush()


def find_by_phone(session, company_id: int, phone: Optional[str]) -> Optional[Contact]:
    digits = normalize_phone(phone)
    if not digits:
        return None
    stmt = (
        select(Contact)
        .join(ContactChannel, ContactChannel.contact_id == Contact.id)
        .where(Contact.company_id == company_id, ContactChannel.normalized == digits)
        .order_by(Contact.id.asc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def get_or_create_contact(session, company_id: int, display_name: Optional[str], phone: Optional[str],
                          module: str, created_by: Optional[int] = None) -> Optional[Contact]:
    """Match by phone digits first, then by display name; create when nothing matches."""
    display_name = (display_name or '').strip()
    contact = find_by_phone(session, company_id, phone)
    if contact is None and display_name:
        contact = session.execute(
            select(Contact)
            .where(Contact.company_id == company_id, func.lower(Contact.display_name) == display_name.lower())
            .order_by(Contact.id.asc())
            .limit(1)
        ).scalars().first()
    if contact is not None:
        add_phone(session, contact, phone)
        return contact
    if not display_name and not normalize_phone(phone):
        return None
    contact = Contact(
        company_id=company_id,
        first_name=display_name or None,
        display_name=display_name or UNNAMED,
        extra_phones=[],
        source_module=module,
        created_by=created_by,
    )
    session.add(contact)
    set_primary_phone(session, contact, phone)
    session.flush()
    return contact


def log_contact_event(session, contact_id: Optional[int], module: str, entity_type: str, entity_id=None,
                      title: str = '', payload: Optional[dict] = None) -> Optional[ContactEvent]:
    if not contact_id:
        return None
    ev = ContactEvent(contact_id=contact_id, module=module, entity_type=entity_type,
                      entity_id=str(entity_id) if entity_id is not None else None,
                      title=title, payload=payload or {})
    session.add(ev)
    return ev


def search_filter(query, q: str):
    """Case-insensitive substring on names; phone digits when the query carries 3+ digits."""
    term = f'%{q.strip().lower()}%'
    clauses = [
        func.lower(Contact.display_name).like(term),
        func.lower(func.coalesce(Contact.nickname, '')).like(term),
        func.lower(func.coalesce(Contact.organization, '')).like(term),
    ]
    digits = normalize_phone(q)
    if len(digits) >= 3:
        phone_ids = select(ContactChannel.contact_id).where(ContactChannel.normalized.like(f'%{digits}%'))
        clauses.append(Contact.id.in_(phone_ids))
    return query.filter(or_(*clauses))
