"""SLA offsets per priority, in hours.

The standard creation form and the helpdesk form have always used different
tables. They are kept apart on purpose until the intended values are confirmed;
do not merge them.
"""
from __future__ import annotations
from typing import Dict

STANDARD = 'standard'
HELPDESK = 'helpdesk'

STANDARD_SLA_HOURS: Dict[str, int] = {
    'critical': 1,
    'high': 4,
    'medium': 24,
    'low': 72,
}

HELPDESK_SLA_HOURS: Dict[str, int] = {
    'critical': 2,
    'high': 4,
    'medium': 8,
    'low': 24,
}

SLA_TABLES: Dict[str, Dict[str, int]] = {
    STANDARD: STANDARD_SLA_HOURS,
    HELPDESK: HELPDESK_SLA_HOURS,
}

# Helpdesk urgency -> minimum priority it implies
URGENCY_FLOOR: Dict[str, str] = {
    'critical': 'critical',
    'high': 'high',
    'normal': 'medium',
    'low': 'low',
}
