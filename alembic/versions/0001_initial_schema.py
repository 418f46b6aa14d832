"""desenhos, cotas, ops, amostras e medicoes

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=True),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("payload_resumo", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("ip", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
    )

    op.create_table(
        "desenhos",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("codigo", sa.String(), nullable=False),
        sa.Column("nome", sa.String(), nullable=False),
        sa.Column("descricao", sa.String(), nullable=True),
        sa.Column("imagem_url", sa.String(), nullable=False),
        sa.Column("imagem_path", sa.String(), nullable=True),
        sa.Column("largura_px", sa.Integer(), nullable=True),
        sa.Column("altura_px", sa.Integer(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index("ix_desenhos_updated_at", "desenhos", ["updated_at"])

    op.create_table(
        "cotas",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("desenho_id", sa.String(), sa.ForeignKey("desenhos.id", ondelete="CASCADE"), nullable=False),
        sa.Column("etiqueta", sa.String(), nullable=False),
        sa.Column("x_percent", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("y_percent", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("observacao", sa.String(), nullable=True),
        sa.Column("nominal", sa.Numeric(14, 4), nullable=True),
        sa.Column("tol_mais", sa.Numeric(14, 4), nullable=True),
        sa.Column("tol_menos", sa.Numeric(14, 4), nullable=True),
        sa.Column("unidade", sa.String(), nullable=True, server_default="mm"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("desenho_id", "etiqueta", name="uq_cota_desenho_etiqueta"),
    )

    op.create_table(
        "ops",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("codigo", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="aberta"),
        sa.Column("desenho_id", sa.String(), sa.ForeignKey("desenhos.id", ondelete="SET NULL"), nullable=True),
        sa.Column("qty", sa.Integer(), nullable=True),
        sa.Column("freq", sa.Integer(), nullable=True),
        sa.Column("params_origem", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("concluida_em", sa.DateTime(), nullable=True),
        sa.CheckConstraint("qty IS NULL OR qty > 0", name="ck_ops_qty_positive"),
        sa.CheckConstraint("freq IS NULL OR freq > 0", name="ck_ops_freq_positive"),
    )
    op.create_index("ix_ops_status", "ops", ["status"])
    op.create_index("ix_ops_desenho_id", "ops", ["desenho_id"])

    op.create_table(
        "op_amostras",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("op_id", sa.String(), sa.ForeignKey("ops.id", ondelete="CASCADE"), nullable=False),
        sa.Column("indice", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pendente"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("op_id", "indice", name="uq_amostra_op_indice"),
        sa.CheckConstraint("indice > 0", name="ck_amostra_indice_positive"),
    )

    op.create_table(
        "medicoes",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("amostra_id", sa.String(), sa.ForeignKey("op_amostras.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cota_id", sa.String(), sa.ForeignKey("cotas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("valor", sa.Numeric(14, 4), nullable=False),
        sa.Column("created_by", sa.String(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("amostra_id", "cota_id", name="uq_medicao_amostra_cota"),
    )


def downgrade() -> None:
    op.drop_table("medicoes")
    op.drop_table("op_amostras")
    op.drop_index("ix_ops_desenho_id", table_name="ops")
    op.drop_index("ix_ops_status", table_name="ops")
    op.drop_table("ops")
    op.drop_table("cotas")
    op.drop_index("ix_desenhos_updated_at", table_name="desenhos")
    op.drop_table("desenhos")
    op.drop_table("audit_logs")
    op.drop_table("users")
