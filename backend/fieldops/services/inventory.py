from __future__ import annotations
"""Inventory consumption for completed interventions.

Each line decrements stock with a single UPDATE that carries the floor check in
its WHERE clause (stock_level >= qty), so concurrent consumers cannot drive an
item negative. check_availability runs first to give a readable 404/400 before
anything is written; a line whose UPDATE matches no row still aborts with 400.
Every decrement is mirrored by an InventoryUsage row and a 'usage' movement.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from flask import abort
from sqlalchemy import update
from fieldops.models.base import utcnow
from fieldops.models.equipment import EquipmentItem, EquipmentMovement, InventoryUsage
from fieldops.services.events import ChangeOp, record_change
from fieldops.utils.validation import parse_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageLine:
    equipment_id: int
    quantity: int


def parse_lines(raw) -> List[UsageLine]:
    """Coerce [{'equipment_id': .., 'quantity': ..}, ...] into UsageLine list (400 on bad input)."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        abort(400, description='inventory_used must be a list')
    out = []
    for item in raw:
        if not isinstance(item, dict):
            abort(400, description='inventory_used entries must be objects')
        out.append(UsageLine(
            equipment_id=parse_int(item.get('equipment_id'), 'equipment_id', minimum=1),
            quantity=parse_int(item.get('quantity'), 'quantity', minimum=1),
        ))
    return out


def check_availability(session, lines: Iterable[UsageLine]) -> Dict[int, EquipmentItem]:
    """Load every referenced item and abort if any would go below zero."""
    wanted: Dict[int, int] = {}
    for line in lines:
        wanted[line.equipment_id] = wanted.get(line.equipment_id, 0) + line.quantity
    items: Dict[int, EquipmentItem] = {}
    for eq_id, qty in wanted.items():
        item = session.get(EquipmentItem, eq_id)
        if item is None:
            abort(404, description=f'Equipment {eq_id} not found')
        if qty > item.stock_level:
            abort(400, description=f'Insufficient stock for {item.name}')
        items[eq_id] = item
    return items


def line_cost_cents(items: Dict[int, EquipmentItem], lines: Iterable[UsageLine]) -> int:
    return sum(items[l.equipment_id].unit_cost_cents * l.quantity for l in lines)


def consume_inventory(session, ticket_id: int, intervention_id: Optional[int], technician_id: int,
                      lines: List[UsageLine], items: Optional[Dict[int, EquipmentItem]] = None) -> List[InventoryUsage]:
    if items is None:
        items = check_availability(session, lines)
    now = utcnow()
    usages = []
    for line in lines:
        item = items[line.equipment_id]
        result = session.execute(
            update(EquipmentItem)
            .where(EquipmentItem.id == line.equipment_id, EquipmentItem.stock_level >= line.quantity)
            .values(stock_level=EquipmentItem.stock_level - line.quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            abort(400, description=f'Insufficient stock for {item.name}')
        session.refresh(item)
        record_change(session, EquipmentItem.__tablename__, ChangeOp.UPDATE, item.id)
        usage = InventoryUsage(
            equipment_id=item.id,
            ticket_id=ticket_id,
            intervention_id=intervention_id,
            quantity_used=line.quantity,
            unit_cost_cents=item.unit_cost_cents,
            total_cost_cents=item.unit_cost_cents * line.quantity,
            used_by=technician_id,
            used_at=now,
        )
        session.add(usage)
        usages.append(usage)
        session.add(EquipmentMovement(
            equipment_id=item.id,
            movement_type=EquipmentMovement.TYPE_USAGE,
            quantity=line.quantity,
            reason=f'Ticket #{ticket_id}',
            user_id=technician_id,
            ticket_id=ticket_id,
            created_at=now,
        ))
    session.flush()
    logger.info('ticket %s consumed %d inventory line(s)', ticket_id, len(usages))
    return usages

__all__ = ['UsageLine', 'parse_lines', 'check_availability', 'line_cost_cents', 'consume_inventory']
