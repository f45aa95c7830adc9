"""Initial schema - Baseline migration

Revision ID: 001_initial
Revises:
Create Date: 2025-01-06 00:00:00.000000

This is the baseline migration that creates all tables for the elderly
persons registry. Table, column and constraint names match the deployed
schema; for existing databases, use `alembic stamp 001_initial` to mark
as applied.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NATIONAL_ID_PATTERN = r'^[0-9]{7,8}-[0-9Kk]$'
EMAIL_PATTERN = r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$'
PHONE_PATTERN = r'^[0-9+][0-9 -]{5,19}$'


def _fk(target: str, name: str, ondelete: str) -> sa.ForeignKey:
    return sa.ForeignKey(target, ondelete=ondelete, name=name)


def upgrade() -> None:
    """Create initial database schema."""

    # Territorial hierarchy
    op.create_table(
        'mac_macrosectores',
        sa.Column('mac_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('mac_nombre', sa.String(255), nullable=False),
        sa.UniqueConstraint('mac_nombre', name='uq_mac_nombre')
    )

    op.create_table(
        'uv_unidadesvecinales',
        sa.Column('uv_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('uv_nombre', sa.String(255), nullable=False),
        sa.Column('uv_macid', sa.Integer,
                  _fk('mac_macrosectores.mac_id', 'fk_uv_mac', 'RESTRICT'), nullable=False),
        sa.UniqueConstraint('uv_nombre', name='uq_uv_nombre')
    )

    # Static catalogs
    op.create_table(
        'gen_generos',
        sa.Column('gen_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('gen_genero', sa.String(255), nullable=False),
        sa.UniqueConstraint('gen_genero', name='uq_gen_genero')
    )

    op.create_table(
        'nac_nacionalidades',
        sa.Column('nac_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('nac_nacionalidad', sa.String(255), nullable=False),
        sa.UniqueConstraint('nac_nacionalidad', name='uq_nac_nacionalidad')
    )

    op.create_table(
        'tal_talleres',
        sa.Column('tal_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('tal_nombre', sa.String(255), nullable=False),
        sa.UniqueConstraint('tal_nombre', name='uq_tal_nombre')
    )

    op.create_table(
        'ben_beneficios',
        sa.Column('ben_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('ben_codigo', sa.String(50), nullable=False),
        sa.Column('ben_descripcion', sa.String(255), nullable=False),
        sa.UniqueConstraint('ben_codigo', name='uq_ben_codigo')
    )

    # Primary entities
    op.create_table(
        'org_orgcomunitarias',
        sa.Column('org_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('org_nombre', sa.String(255), nullable=False),
        sa.Column('org_direccion', sa.String(255), nullable=False),
        sa.Column('org_uvid', sa.Integer,
                  _fk('uv_unidadesvecinales.uv_id', 'fk_org_uv', 'RESTRICT'), nullable=False),
        sa.Column('org_fechaconst', sa.Date, nullable=False),
        sa.Column('org_perjuridica', sa.String(255), nullable=False),
        sa.Column('org_email', sa.String(255)),
        sa.UniqueConstraint('org_nombre', name='uq_org_nombre')
    )

    op.create_table(
        'org_telefonos',
        sa.Column('ot_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('ot_orgid', sa.Integer,
                  _fk('org_orgcomunitarias.org_id', 'fk_ot_org', 'CASCADE'), nullable=False),
        sa.Column('ot_tipo', sa.String(30), nullable=False, server_default='principal'),
        sa.Column('ot_numero', sa.String(20), nullable=False),
        sa.UniqueConstraint('ot_orgid', 'ot_tipo', name='uq_ot_org_tipo')
    )

    op.create_table(
        'cen_cencomunitarios',
        sa.Column('cen_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('cen_nombre', sa.String(255), nullable=False),
        sa.Column('cen_direccion', sa.String(255), nullable=False),
        sa.Column('cen_uvid', sa.Integer,
                  _fk('uv_unidadesvecinales.uv_id', 'fk_cen_uv', 'RESTRICT'), nullable=False),
        sa.UniqueConstraint('cen_nombre', name='uq_cen_nombre')
    )

    op.create_table(
        'per_personasmayores',
        sa.Column('per_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('per_rut', sa.String(12), nullable=False),
        sa.Column('per_prinombre', sa.String(255), nullable=False),
        sa.Column('per_segnombre', sa.String(255)),
        sa.Column('per_priapellido', sa.String(255), nullable=False),
        sa.Column('per_segapellido', sa.String(255)),
        sa.Column('per_genid', sa.Integer,
                  _fk('gen_generos.gen_id', 'fk_per_gen', 'RESTRICT'), nullable=False),
        sa.Column('per_nacid', sa.Integer,
                  _fk('nac_nacionalidades.nac_id', 'fk_per_nac', 'RESTRICT'), nullable=False),
        sa.Column('per_fechadenac', sa.Date, nullable=False),
        sa.Column('per_direccion', sa.String(255), nullable=False),
        sa.Column('per_email', sa.String(255)),
        sa.Column('per_uvid', sa.Integer,
                  _fk('uv_unidadesvecinales.uv_id', 'fk_per_uv', 'RESTRICT'), nullable=False),
        sa.UniqueConstraint('per_rut', name='uq_per_rut')
    )

    op.create_table(
        'per_telefonos',
        sa.Column('pt_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('pt_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_pt_per', 'CASCADE'), nullable=False),
        sa.Column('pt_tipo', sa.String(30), nullable=False, server_default='principal'),
        sa.Column('pt_numero', sa.String(20), nullable=False),
        sa.UniqueConstraint('pt_perid', 'pt_tipo', name='uq_pt_per_tipo')
    )

    op.create_table(
        'act_actividades',
        sa.Column('act_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('act_nombre', sa.String(255), nullable=False),
        sa.Column('act_uvid', sa.Integer,
                  _fk('uv_unidadesvecinales.uv_id', 'fk_act_uv', 'RESTRICT'), nullable=False),
        sa.Column('act_fecha_ini', sa.Date, nullable=False),
        sa.Column('act_fecha_fin', sa.Date),
        sa.Column('act_descripcion', sa.Text),
        sa.UniqueConstraint('act_nombre', 'act_fecha_ini', 'act_uvid', name='uq_act_nombre_fecha_uv'),
        sa.CheckConstraint('act_fecha_fin IS NULL OR act_fecha_fin >= act_fecha_ini', name='chk_act_fechas')
    )

    op.create_table(
        'via_viajes',
        sa.Column('via_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('via_nombre', sa.String(255), nullable=False),
        sa.Column('via_destino', sa.String(255), nullable=False),
        sa.Column('via_fecha_salida', sa.Date, nullable=False),
        sa.Column('via_fecha_regreso', sa.Date),
        sa.Column('via_uvid', sa.Integer,
                  _fk('uv_unidadesvecinales.uv_id', 'fk_via_uv', 'RESTRICT'), nullable=False),
        sa.UniqueConstraint('via_nombre', 'via_fecha_salida', 'via_uvid', name='uq_via_nombre_salida_uv'),
        sa.CheckConstraint(
            'via_fecha_regreso IS NULL OR via_fecha_regreso >= via_fecha_salida',
            name='chk_via_fechas'
        )
    )

    # Associations
    op.create_table(
        'per_beneficios',
        sa.Column('pb_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_pb_per', 'CASCADE'), primary_key=True),
        sa.Column('pb_benid', sa.Integer,
                  _fk('ben_beneficios.ben_id', 'fk_pb_ben', 'CASCADE'), primary_key=True),
        sa.Column('pb_fecha_asignacion', sa.Date, nullable=False,
                  server_default=sa.text('CURRENT_DATE'))
    )

    op.create_table(
        'per_org',
        sa.Column('po_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_po_per', 'CASCADE'), primary_key=True),
        sa.Column('po_orgid', sa.Integer,
                  _fk('org_orgcomunitarias.org_id', 'fk_po_org', 'CASCADE'), primary_key=True)
    )

    op.create_table(
        'soli_cen',
        sa.Column('soli_orgid', sa.Integer,
                  _fk('org_orgcomunitarias.org_id', 'fk_soli_org', 'CASCADE'), primary_key=True),
        sa.Column('soli_cenid', sa.Integer,
                  _fk('cen_cencomunitarios.cen_id', 'fk_soli_cen', 'CASCADE'), primary_key=True),
        sa.Column('soli_fecha', sa.Date, primary_key=True,
                  server_default=sa.text('CURRENT_DATE'))
    )

    op.create_table(
        'reg_registromantenimientos',
        sa.Column('reg_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('reg_cenid', sa.Integer,
                  _fk('cen_cencomunitarios.cen_id', 'fk_reg_cen', 'CASCADE'), nullable=False),
        sa.Column('reg_servicio', sa.String(255), nullable=False),
        sa.Column('reg_fecha', sa.Date, nullable=False),
        sa.Column('reg_detalle', sa.String(255)),
        sa.UniqueConstraint('reg_cenid', 'reg_servicio', 'reg_fecha', name='uq_reg_cen_serv_fecha')
    )

    # Attendance
    op.create_table(
        'asis_talleres',
        sa.Column('asistal_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('asis_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_asistal_per', 'CASCADE'), nullable=False),
        sa.Column('asis_talid', sa.Integer,
                  _fk('tal_talleres.tal_id', 'fk_asistal_tal', 'CASCADE'), nullable=False),
        sa.Column('asis_fecha', sa.DateTime, nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('asis_perid', 'asis_talid', name='uq_asistal')
    )

    op.create_table(
        'asis_actividades',
        sa.Column('asisact_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('asis_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_asisact_per', 'CASCADE'), nullable=False),
        sa.Column('asis_actid', sa.Integer,
                  _fk('act_actividades.act_id', 'fk_asisact_act', 'CASCADE'), nullable=False),
        sa.Column('asis_fecha', sa.DateTime, nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('asis_perid', 'asis_actid', name='uq_asisact')
    )

    op.create_table(
        'asis_viajes',
        sa.Column('asisvia_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('asis_perid', sa.Integer,
                  _fk('per_personasmayores.per_id', 'fk_asisvia_per', 'CASCADE'), nullable=False),
        sa.Column('asis_viaid', sa.Integer,
                  _fk('via_viajes.via_id', 'fk_asisvia_via', 'CASCADE'), nullable=False),
        sa.Column('asis_fecha', sa.DateTime, nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('asis_perid', 'asis_viaid', name='uq_asisvia')
    )

    # Lookup indexes
    op.create_index('idx_uv_mac', 'uv_unidadesvecinales', ['uv_macid'])
    op.create_index('idx_org_uv', 'org_orgcomunitarias', ['org_uvid'])
    op.create_index('idx_ot_org', 'org_telefonos', ['ot_orgid'])
    op.create_index('idx_cen_uv', 'cen_cencomunitarios', ['cen_uvid'])

    op.create_index('idx_per_uvid', 'per_personasmayores', ['per_uvid'])
    op.create_index('idx_per_gen', 'per_personasmayores', ['per_genid'])
    op.create_index('idx_per_nac', 'per_personasmayores', ['per_nacid'])
    op.create_index('idx_pt_per', 'per_telefonos', ['pt_perid'])

    op.create_index('idx_act_fecha', 'act_actividades', ['act_fecha_ini'])
    op.create_index('idx_act_uv_fecha', 'act_actividades', ['act_uvid', 'act_fecha_ini'])
    op.create_index('idx_via_salida', 'via_viajes', ['via_fecha_salida'])
    op.create_index('idx_via_uv_salida', 'via_viajes', ['via_uvid', 'via_fecha_salida'])

    op.create_index('idx_pb_ben', 'per_beneficios', ['pb_benid'])
    op.create_index('idx_po_org', 'per_org', ['po_orgid'])
    op.create_index('idx_soli_cen', 'soli_cen', ['soli_cenid', 'soli_fecha'])

    op.create_index('idx_asistal_per_fecha', 'asis_talleres', ['asis_perid', 'asis_fecha'])
    op.create_index('idx_asistal_tal_fecha', 'asis_talleres', ['asis_talid', 'asis_fecha'])
    op.create_index('idx_asisact_per_fecha', 'asis_actividades', ['asis_perid', 'asis_fecha'])
    op.create_index('idx_asisact_act_fecha', 'asis_actividades', ['asis_actid', 'asis_fecha'])
    op.create_index('idx_asisvia_per_fecha', 'asis_viajes', ['asis_perid', 'asis_fecha'])
    op.create_index('idx_asisvia_via_fecha', 'asis_viajes', ['asis_viaid', 'asis_fecha'])

    # Format checks use POSIX regex operators (PostgreSQL only)
    if op.get_bind().dialect.name == 'postgresql':
        op.create_check_constraint(
            'chk_per_rut_formato', 'per_personasmayores',
            f"per_rut ~ '{NATIONAL_ID_PATTERN}'"
        )
        op.create_check_constraint(
            'chk_per_email_formato', 'per_personasmayores',
            f"per_email IS NULL OR per_email ~* '{EMAIL_PATTERN}'"
        )
        op.create_check_constraint(
            'chk_org_email_formato', 'org_orgcomunitarias',
            f"org_email IS NULL OR org_email ~* '{EMAIL_PATTERN}'"
        )
        op.create_check_constraint(
            'chk_pt_numero_formato', 'per_telefonos',
            f"pt_numero ~ '{PHONE_PATTERN}'"
        )


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse order
    op.drop_table('asis_viajes')
    op.drop_table('asis_actividades')
    op.drop_table('asis_talleres')
    op.drop_table('reg_registromantenimientos')
    op.drop_table('soli_cen')
    op.drop_table('per_org')
    op.drop_table('per_beneficios')
    op.drop_table('via_viajes')
    op.drop_table('act_actividades')
    op.drop_table('per_telefonos')
    op.drop_table('per_personasmayores')
    op.drop_table('cen_cencomunitarios')
    op.drop_table('org_telefonos')
    op.drop_table('org_orgcomunitarias')
    op.drop_table('ben_beneficios')
    op.drop_table('tal_talleres')
    op.drop_table('nac_nacionalidades')
    op.drop_table('gen_generos')
    op.drop_table('uv_unidadesvecinales')
    op.drop_table('mac_macrosectores')
