"""initial field service schema

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-16
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

TZ = sa.DateTime(timezone=True)


def upgrade():
    op.create_table('restaurants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('address', sa.String(length=255)),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_restaurants_name', 'restaurants', ['name'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='technician'),
        sa.Column('specialization', sa.String(length=128)),
        sa.Column('avatar_url', sa.String(length=512)),
        sa.Column('restaurant_id', sa.Integer(), sa.ForeignKey('restaurants.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_restaurant_id', 'users', ['restaurant_id'])

    op.create_table('token_blocklist',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('jti', sa.String(length=64), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('revoked_at', TZ),
    )
    op.create_index('ix_token_blocklist_jti', 'token_blocklist', ['jti'])

    op.create_table('devices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('serial_number', sa.String(length=128), unique=True),
        sa.Column('model', sa.String(length=128)),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='operational'),
        sa.Column('restaurant_id', sa.Integer(), sa.ForeignKey('restaurants.id'), nullable=False),
        sa.Column('last_maintenance_at', TZ),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_devices_name', 'devices', ['name'])
    op.create_index('ix_devices_serial_number', 'devices', ['serial_number'])
    op.create_index('ix_devices_status', 'devices', ['status'])
    op.create_index('ix_devices_restaurant_id', 'devices', ['restaurant_id'])

    op.create_table('tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('diagnostic_info', sa.Text(), nullable=False, server_default=''),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='new'),
        sa.Column('device_id', sa.Integer(), sa.ForeignKey('devices.id'), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), sa.ForeignKey('restaurants.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assignee_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('photos', sa.JSON()),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
        sa.Column('assigned_at', TZ),
        sa.Column('first_response_at', TZ),
        sa.Column('resolved_at', TZ),
        sa.Column('closed_at', TZ),
        sa.Column('sla_due_at', TZ, nullable=False),
        sa.Column('scheduled_for', sa.String(length=255)),
        sa.Column('resolution', sa.Text()),
        sa.Column('time_spent_minutes', sa.Integer()),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('source', sa.String(length=16), nullable=False, server_default='standard'),
        sa.Column('jira_ticket_id', sa.String(length=64)),
        sa.Column('customer_report', sa.Text()),
        sa.Column('problem_description', sa.Text()),
        sa.Column('initial_diagnosis', sa.Text()),
        sa.Column('remote_steps_attempted', sa.Text()),
        sa.Column('business_impact', sa.Text()),
        sa.Column('requires_onsite', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('estimated_duration', sa.String(length=16)),
        sa.Column('urgency_level', sa.String(length=16)),
        sa.Column('preferred_time_slot', sa.String(length=64)),
        sa.Column('contact_person', sa.String(length=128)),
        sa.Column('contact_phone', sa.String(length=32)),
        sa.Column('access_instructions', sa.Text()),
    )
    for col in ('priority', 'status', 'device_id', 'restaurant_id', 'assignee_id', 'created_at', 'sla_due_at'):
        op.create_index(f'ix_tickets_{col}', 'tickets', [col])

    op.create_table('ticket_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('timestamp', TZ, nullable=False),
    )
    op.create_index('ix_ticket_history_ticket_id', 'ticket_history', ['ticket_id'])

    op.create_table('ticket_comments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', TZ, nullable=False),
    )
    op.create_index('ix_ticket_comments_ticket_id', 'ticket_comments', ['ticket_id'])

    op.create_table('equipment_inventory',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('part_number', sa.String(length=64), unique=True),
        sa.Column('stock_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_stock_level', sa.Integer()),
        sa.Column('warehouse_location', sa.String(length=128)),
        sa.Column('supplier', sa.String(length=128)),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_equipment_inventory_name', 'equipment_inventory', ['name'])
    op.create_index('ix_equipment_inventory_part_number', 'equipment_inventory', ['part_number'])

    op.create_table('interventions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('work_performed', sa.Text(), nullable=False),
        sa.Column('root_cause', sa.Text()),
        sa.Column('resolution', sa.Text(), nullable=False),
        sa.Column('preventive_measures', sa.Text()),
        sa.Column('customer_satisfaction', sa.String(length=32)),
        sa.Column('time_spent_hours', sa.Float()),
        sa.Column('follow_up_required', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('follow_up_notes', sa.Text()),
        sa.Column('technician_notes', sa.Text()),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', TZ, nullable=False),
    )
    op.create_index('ix_interventions_ticket_id', 'interventions', ['ticket_id'])
    op.create_index('ix_interventions_technician_id', 'interventions', ['technician_id'])

    op.create_table('inventory_usage',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('equipment_id', sa.Integer(), sa.ForeignKey('equipment_inventory.id'), nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('intervention_id', sa.Integer(), sa.ForeignKey('interventions.id'), nullable=True),
        sa.Column('quantity_used', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('used_at', TZ, nullable=False),
    )
    op.create_index('ix_inventory_usage_equipment_id', 'inventory_usage', ['equipment_id'])
    op.create_index('ix_inventory_usage_ticket_id', 'inventory_usage', ['ticket_id'])

    op.create_table('equipment_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('equipment_id', sa.Integer(), sa.ForeignKey('equipment_inventory.id'), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255)),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=True),
        sa.Column('created_at', TZ, nullable=False),
    )
    op.create_index('ix_equipment_movements_equipment_id', 'equipment_movements', ['equipment_id'])

    op.create_table('maintenance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('device_id', sa.Integer(), sa.ForeignKey('devices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('maintenance_type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='scheduled'),
        sa.Column('scheduled_date', TZ, nullable=False),
        sa.Column('completed_at', TZ),
        sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_maintenance_records_device_id', 'maintenance_records', ['device_id'])
    op.create_index('ix_maintenance_records_status', 'maintenance_records', ['status'])
    op.create_index('ix_maintenance_records_scheduled_date', 'maintenance_records', ['scheduled_date'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='info'),
        sa.Column('related_id', sa.Integer()),
        sa.Column('related_type', sa.String(length=32)),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', TZ, nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_read', 'notifications', ['read'])

    op.create_table('knowledge_articles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('tags', sa.JSON()),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('image_url', sa.String(length=512)),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', TZ),
        sa.Column('updated_at', TZ),
    )
    op.create_index('ix_knowledge_articles_title', 'knowledge_articles', ['title'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('role', sa.String(length=32)),
        sa.Column('meta', sa.JSON()),
        sa.Column('created_at', TZ),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    for table in (
        'audit_logs', 'knowledge_articles', 'notifications', 'maintenance_records',
        'equipment_movements', 'inventory_usage', 'interventions', 'equipment_inventory', 'ticket_comments',
        'ticket_history', 'tickets', 'devices', 'token_blocklist', 'users', 'restaurants',
    ):
        op.drop_table(table)
