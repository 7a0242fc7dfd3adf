"""Create Buildline assembly tracking tables

Revision ID: 001_buildline_assembly
Revises:
Create Date: 2026-10-18

Bins, journeys, the three audit trails and QC checklists. The users and
locations directories belong to the ERP and are not created here.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_buildline_assembly'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create assembly tracking tables"""

    # ====================
    # ASSEMBLY BINS
    # ====================
    op.create_table(
        'assembly_bins',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('location_id', UUID(as_uuid=True), nullable=False),
        sa.Column('bin_code', sa.String(50), nullable=False),
        sa.Column('bin_name', sa.String(200), nullable=True),
        sa.Column('zone', sa.String(100), nullable=True),
        sa.Column('status_zone', sa.String(30), server_default='inward_zone', nullable=False),
        sa.Column('bin_status', sa.String(20), server_default='active', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('capacity', sa.Integer, server_default='1', nullable=False),
        sa.Column('current_occupancy', sa.Integer, server_default='0', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('location_id', 'bin_code', name='unique_assembly_bin_per_location'),
        sa.CheckConstraint(
            'current_occupancy >= 0 AND current_occupancy <= capacity',
            name='valid_assembly_bin_occupancy'
        ),
    )

    op.create_index('ix_assembly_bins_location_id', 'assembly_bins', ['location_id'])
    op.create_index('ix_assembly_bins_is_active', 'assembly_bins', ['is_active'])
    op.create_index(
        'idx_assembly_bins_zone_lookup',
        'assembly_bins',
        ['location_id', 'status_zone', 'current_occupancy', 'bin_code'],
    )

    # ====================
    # ASSEMBLY JOURNEYS
    # ====================
    op.create_table(
        'assembly_journeys',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('barcode', sa.String(100), unique=True, nullable=False),
        sa.Column('model_sku', sa.String(100), nullable=False),
        sa.Column('frame_number', sa.String(100), nullable=True),
        sa.Column('item_name', sa.String(255), nullable=True),
        sa.Column('item_color', sa.String(100), nullable=True),
        sa.Column('item_size', sa.String(50), nullable=True),
        sa.Column('current_status', sa.String(30), server_default='inwarded', nullable=False),
        sa.Column('current_location_id', UUID(as_uuid=True), nullable=True),
        sa.Column('bin_location_id', UUID(as_uuid=True), sa.ForeignKey('assembly_bins.id'), nullable=True),
        sa.Column('priority', sa.Boolean, server_default='false', nullable=False),
        sa.Column(
            'checklist', JSONB,
            server_default='{"tyres": false, "brakes": false, "gears": false}',
            nullable=False
        ),
        sa.Column('technician_id', UUID(as_uuid=True), nullable=True),
        sa.Column('supervisor_id', UUID(as_uuid=True), nullable=True),
        sa.Column('qc_person_id', UUID(as_uuid=True), nullable=True),
        sa.Column('inwarded_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('qc_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('qc_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parts_missing', sa.Boolean, server_default='false', nullable=False),
        sa.Column('parts_missing_list', JSONB, nullable=True),
        sa.Column('damage_reported', sa.Boolean, server_default='false', nullable=False),
        sa.Column('damage_notes', sa.Text, nullable=True),
        sa.Column('damage_photos', JSONB, nullable=True),
        sa.Column('assembly_paused', sa.Boolean, server_default='false', nullable=False),
        sa.Column('pause_reason', sa.String(50), nullable=True),
        sa.Column('qc_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('qc_failure_reason', sa.Text, nullable=True),
        sa.Column('qc_photos', JSONB, nullable=True),
        sa.Column('rework_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('grn_reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint(
            "checklist ? 'tyres' AND checklist ? 'brakes' AND checklist ? 'gears'",
            name='valid_assembly_checklist'
        ),
    )

    op.create_index('ix_assembly_journeys_barcode', 'assembly_journeys', ['barcode'])
    op.create_index('ix_assembly_journeys_current_status', 'assembly_journeys', ['current_status'])
    op.create_index('ix_assembly_journeys_current_location_id', 'assembly_journeys', ['current_location_id'])
    op.create_index('ix_assembly_journeys_bin_location_id', 'assembly_journeys', ['bin_location_id'])
    op.create_index(
        'idx_assembly_journeys_technician_status',
        'assembly_journeys',
        ['technician_id', 'current_status'],
    )

    # ====================
    # AUDIT TRAILS
    # ====================
    op.create_table(
        'assembly_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column(
            'journey_id', UUID(as_uuid=True),
            sa.ForeignKey('assembly_journeys.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_assembly_status_history_journey_id', 'assembly_status_history', ['journey_id'])

    op.create_table(
        'assembly_location_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column(
            'journey_id', UUID(as_uuid=True),
            sa.ForeignKey('assembly_journeys.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('from_location_id', UUID(as_uuid=True), nullable=True),
        sa.Column('to_location_id', UUID(as_uuid=True), nullable=False),
        sa.Column('moved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_assembly_location_history_journey_id', 'assembly_location_history', ['journey_id'])

    op.create_table(
        'assembly_bin_movement_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column(
            'journey_id', UUID(as_uuid=True),
            sa.ForeignKey('assembly_journeys.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('from_bin_id', UUID(as_uuid=True), sa.ForeignKey('assembly_bins.id'), nullable=True),
        sa.Column('to_bin_id', UUID(as_uuid=True), sa.ForeignKey('assembly_bins.id'), nullable=True),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('moved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('auto_assigned', sa.Boolean, server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_assembly_bin_movement_history_journey_id', 'assembly_bin_movement_history', ['journey_id'])
    op.create_index('ix_assembly_bin_movement_history_from_bin_id', 'assembly_bin_movement_history', ['from_bin_id'])
    op.create_index('ix_assembly_bin_movement_history_to_bin_id', 'assembly_bin_movement_history', ['to_bin_id'])

    # ====================
    # QC CHECKLISTS
    # ====================
    op.create_table(
        'qc_checklists',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column(
            'journey_id', UUID(as_uuid=True),
            sa.ForeignKey('assembly_journeys.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('qc_person_id', UUID(as_uuid=True), nullable=False),
        sa.Column('brake_check', sa.Boolean, server_default='false', nullable=False),
        sa.Column('brake_notes', sa.Text, nullable=True),
        sa.Column('drivetrain_check', sa.Boolean, server_default='false', nullable=False),
        sa.Column('drivetrain_notes', sa.Text, nullable=True),
        sa.Column('alignment_check', sa.Boolean, server_default='false', nullable=False),
        sa.Column('alignment_notes', sa.Text, nullable=True),
        sa.Column('torque_check', sa.Boolean, server_default='false', nullable=False),
        sa.Column('torque_notes', sa.Text, nullable=True),
        sa.Column('accessories_check', sa.Boolean, server_default='false', nullable=False),
        sa.Column('accessories_notes', sa.Text, nullable=True),
        sa.Column('result', sa.String(20), server_default='pending', nullable=False),
        sa.Column('failure_reason', sa.Text, nullable=True),
        sa.Column('photos', JSONB, nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_qc_checklists_journey_id', 'qc_checklists', ['journey_id'])


def downgrade():
    """Drop assembly tracking tables"""
    op.drop_table('qc_checklists')
    op.drop_table('assembly_bin_movement_history')
    op.drop_table('assembly_location_history')
    op.drop_table('assembly_status_history')
    op.drop_table('assembly_journeys')
    op.drop_table('assembly_bins')
