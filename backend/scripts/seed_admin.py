#!/usr/bin/env python
"""Idempotent bootstrap: initial admin account, optionally a demo restaurant.

Usage:
    python backend/scripts/seed_admin.py               # create admin if missing
    python backend/scripts/seed_admin.py --demo        # also seed a demo restaurant, devices and parts
    python backend/scripts/seed_admin.py --show-roles  # print role -> permission counts
    python backend/scripts/seed_admin.py --dry-run     # run logic then rollback (no DB changes)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from fieldops import create_app, get_db  # type: ignore
from fieldops.constants.permissions import ROLE_PRESETS, permissions_for_role
from fieldops.models.base import Base
from fieldops.models.user import User
from fieldops.models.restaurant import Restaurant
from fieldops.models.device import Device
from fieldops.models.equipment import EquipmentItem

DEMO_DEVICES = [
    ('Front POS', 'pos', 'POS-DEMO-001'),
    ('Kitchen Printer', 'printer', 'PRN-DEMO-001'),
    ('Drive-thru Display', 'display', 'DSP-DEMO-001'),
]
DEMO_PARTS = [
    ('Thermal Paper Roll', 'consumable', 'PART-PAPER', 40, 10, 250),
    ('Receipt Printer Head', 'spare', 'PART-HEAD', 5, 2, 4500),
    ('USB Cable', 'cable', 'PART-USB', 25, 5, 300),
]


def ensure_initial_admin(session):
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').strip().lower()
    existing = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if existing:
        return 0
    user = User(name='Administrator', email=admin_email, password_hash='', role=User.ROLE_ADMIN)
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    print(f"[INFO] Created initial admin user {admin_email} with temporary password.")
    return 1


def ensure_demo_data(session):
    created = 0
    restaurant = session.execute(select(Restaurant).where(Restaurant.name == 'Demo Restaurant')).scalar_one_or_none()
    if not restaurant:
        restaurant = Restaurant(name='Demo Restaurant', address='1 Main Street', phone='+10000000000')
        session.add(restaurant)
        session.flush()
        created += 1
    for name, kind, serial in DEMO_DEVICES:
        if session.execute(select(Device).where(Device.serial_number == serial)).scalar_one_or_none():
            continue
        session.add(Device(name=name, type=kind, serial_number=serial, restaurant_id=restaurant.id))
        created += 1
    for name, kind, part_number, stock, minimum, cost in DEMO_PARTS:
        if session.execute(select(EquipmentItem).where(EquipmentItem.part_number == part_number)).scalar_one_or_none():
            continue
        session.add(EquipmentItem(name=name, type=kind, part_number=part_number, stock_level=stock,
                                  min_stock_level=minimum, unit_cost_cents=cost))
        created += 1
    session.flush()
    return created


def print_role_summary():
    name_w = max(len(r) for r in ROLE_PRESETS)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for role in ROLE_PRESETS:
        perms = permissions_for_role(role)
        print(f"{role.ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:8])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed the initial admin account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_admin.py\n  dry run: seed_admin.py --dry-run\n  demo data: seed_admin.py --demo\n""")
    )
    p.add_argument('--demo', action='store_true', help='Also create a demo restaurant with devices and spare parts')
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM users LIMIT 1'))
        except OperationalError:
            session.rollback()
            # Bootstrap schema when migrations have not run; prefer `alembic upgrade head`
            Base.metadata.create_all(session.get_bind())
        session.commit()

    with app.app_context():
        session = get_db()
        created_admin = ensure_initial_admin(session)
        created_demo = ensure_demo_data(session) if args.demo else 0
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Admin would create: {created_admin}, demo rows would create: {created_demo}")
        else:
            session.commit()
            print(f"[DONE] Admin created: {created_admin}, demo rows created: {created_demo}")
        if args.show_roles:
            print_role_summary()


if __name__ == '__main__':
    main()
