"""Central enum-like definitions to avoid typos in permission/service strings.
Permissions are derived from the user's single role; there is no per-user grant table.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['TKT', 'DEV', 'RST', 'EQP', 'MNT', 'KB', 'USR', 'ADMIN']

SERVICE_ACTIONS = {
    'TKT': ['READ', 'CREATE', 'UPDATE'],
    'DEV': ['READ', 'STATUS', 'MANAGE'],
    'RST': ['READ', 'MANAGE'],
    'EQP': ['READ', 'MANAGE', 'ADJUST'],
    'MNT': ['READ', 'MANAGE'],
    'KB': ['READ', 'MANAGE'],
    'USR': ['READ'],
    'ADMIN': ['AUDIT.READ'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

_FIELD_TECH = [
    'TKT.READ', 'TKT.CREATE', 'TKT.UPDATE',
    'DEV.READ', 'DEV.STATUS',
    'RST.READ',
    'EQP.READ',
    'MNT.READ', 'MNT.MANAGE',
    'KB.READ', 'KB.MANAGE',
    'USR.READ',
]

ROLE_PRESETS: Dict[str, List[str]] = {
    'technician': _FIELD_TECH,
    'software_tech': _FIELD_TECH,
    'restaurant_staff': ['TKT.READ', 'TKT.CREATE', 'DEV.READ', 'RST.READ', 'KB.READ'],
    'warehouse': ['TKT.READ', 'DEV.READ', 'EQP.READ', 'EQP.MANAGE', 'EQP.ADJUST', 'KB.READ'],
    # Manager: every operational permission, nothing under ADMIN
    'manager': [c for c in ALL_PERMISSION_CODES if not c.startswith('ADMIN.')],
    'admin': ['*'],
}


def permissions_for_role(role: str) -> List[str]:
    codes = ROLE_PRESETS.get(role, [])
    if '*' in codes:
        return list(ALL_PERMISSION_CODES)
    return sorted(set(codes))
