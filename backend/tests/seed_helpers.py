"""Test seeding utilities to reduce duplication.

Every helper commits, so rows are visible to requests made through the test
client. The in-memory database is shared by the whole session: pass unique
names (see `unique`) rather than relying on an empty table.
"""
import itertools
import uuid
from typing import Optional
from fieldops import get_db
from fieldops.models.device import Device
from fieldops.models.equipment import EquipmentItem
from fieldops.models.restaurant import Restaurant
from fieldops.models.ticket import Ticket
from fieldops.models.user import User
from fieldops.routes.auth import issue_token

_seq = itertools.count(1)


def unique(prefix: str) -> str:
    return f'{prefix}-{next(_seq)}-{uuid.uuid4().hex[:6]}'


def ensure_user(email: Optional[str] = None, role: str = User.ROLE_TECHNICIAN, restaurant_id: Optional[int] = None,
                name: Optional[str] = None, password: str = 'pw') -> User:
    session = get_db()
    email = (email or f"{unique(role)}@example.com").lower()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, password_hash='', role=role, restaurant_id=restaurant_id)
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_restaurant(name: Optional[str] = None) -> Restaurant:
    session = get_db()
    name = name or unique('Restaurant')
    r = session.query(Restaurant).filter_by(name=name).one_or_none()
    if not r:
        r = Restaurant(name=name, address='1 Test Street', phone='+10000000000')
        session.add(r); session.commit(); session.refresh(r)
    return r


def ensure_device(restaurant: Restaurant, name: Optional[str] = None, status: str = Device.STATUS_OPERATIONAL) -> Device:
    session = get_db()
    d = Device(name=name or unique('POS'), type='pos', serial_number=unique('SN'), model='T-1000',
               status=status, restaurant_id=restaurant.id)
    session.add(d); session.commit(); session.refresh(d)
    return d


def ensure_equipment(stock_level: int = 10, unit_cost_cents: int = 500, min_stock_level: int = 2, name: Optional[str] = None) -> EquipmentItem:
    session = get_db()
    e = EquipmentItem(name=name or unique('Part'), type='spare', part_number=unique('PN'), stock_level=stock_level,
                      min_stock_level=min_stock_level, unit_cost_cents=unit_cost_cents)
    session.add(e); session.commit(); session.refresh(e)
    return e


def jwt_headers(user: User):
    return {'Authorization': f'Bearer {issue_token(user)}'}


def create_ticket_via_api(client, headers, restaurant: Restaurant, device: Device, priority: str = 'high', **extra):
    payload = {
        'title': extra.pop('title', unique('Printer jam')),
        'diagnostic_info': 'Paper feed stuck',
        'priority': priority,
        'device_id': device.id,
        'restaurant_id': restaurant.id,
    }
    payload.update(extra)
    resp = client.post('/tickets', json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def field_setup():
    """Restaurant + device + a technician and an admin, with auth headers."""
    restaurant = ensure_restaurant()
    device = ensure_device(restaurant)
    tech = ensure_user(role=User.ROLE_TECHNICIAN)
    admin = ensure_user(role=User.ROLE_ADMIN)
    return {
        'restaurant': restaurant,
        'device': device,
        'tech': tech,
        'admin': admin,
        'tech_headers': jwt_headers(tech),
        'admin_headers': jwt_headers(admin),
    }


def ticket_row(ticket_id: int) -> Ticket:
    session = get_db()
    t = session.get(Ticket, ticket_id)
    session.refresh(t)
    return t
