"""auth schema: users, user_sessions, account_deletions

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="创建时间 (UTC)",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="更新时间 (UTC)",
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("email", sa.String(255), nullable=True, comment="用户邮箱"),
        sa.Column("mobile", sa.String(20), nullable=True, comment="手机号 (E.164)"),
        sa.Column("username", sa.String(50), nullable=True, comment="用户名"),
        sa.Column(
            "hashed_password", sa.String(255), nullable=True, comment="密码哈希值 (Argon2id)"
        ),
        sa.Column("name", sa.String(100), nullable=True, comment="显示名称"),
        sa.Column("picture", sa.String(512), nullable=True, comment="头像URL"),
        sa.Column(
            "is_verified", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "is_2fa_enabled", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "is_superuser", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sso_provider", sa.String(30), nullable=True),
        sa.Column("sso_id", sa.String(255), nullable=True),
        sa.Column("otp", sa.String(6), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "otp_attempts", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("last_otp_request_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("magic_link", sa.String(64), nullable=True),
        sa.Column("magic_link_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_magic_link_used",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("email", name=op.f("uq_users_email")),
        sa.UniqueConstraint("mobile", name=op.f("uq_users_mobile")),
        sa.UniqueConstraint("username", name=op.f("uq_users_username")),
        sa.UniqueConstraint("magic_link", name=op.f("uq_users_magic_link")),
        sa.UniqueConstraint("sso_provider", "sso_id", name="uq_users_sso_identity"),
    )

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Uuid(), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("user_id", sa.Uuid(), nullable=False, comment="关联用户ID"),
        sa.Column("device", sa.String(100), nullable=False),
        sa.Column("os", sa.String(100), nullable=False),
        sa.Column("browser", sa.String(100), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_user_sessions_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_sessions")),
    )
    op.create_index(
        op.f("ix_user_sessions_user_id"), "user_sessions", ["user_id"], unique=False
    )
    op.create_index(
        "ix_user_sessions_user_active",
        "user_sessions",
        ["user_id", "is_active"],
        unique=False,
    )

    op.create_table(
        "account_deletions",
        sa.Column("id", sa.Uuid(), nullable=False, comment="主键 (UUID v7)"),
        sa.Column("user_id", sa.Uuid(), nullable=False, comment="被删除的用户ID"),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_account_deletions")),
    )
    op.create_index(
        op.f("ix_account_deletions_user_id"),
        "account_deletions",
        ["user_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_account_deletions_user_id"), table_name="account_deletions")
    op.drop_table("account_deletions")
    op.drop_index("ix_user_sessions_user_active", table_name="user_sessions")
    op.drop_index(op.f("ix_user_sessions_user_id"), table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_table("users")
