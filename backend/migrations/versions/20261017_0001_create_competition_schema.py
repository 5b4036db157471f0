from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=False)

def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(120)),
        sa.Column("role", sa.String(16), nullable=False, server_default="user"),
        sa.Column("total_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "competitions",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("competition_id", sa.String(16), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="weekly"),
        sa.Column("start_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="PST"),
        sa.Column("status", sa.String(16), nullable=False, server_default="upcoming"),
        sa.Column("total_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("standard_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("premium_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_standard_slots", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("max_premium_slots", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("total_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_id", UUID),
        sa.Column("runner_up_ids", postgresql.ARRAY(UUID), nullable=False, server_default="{}"),
        sa.Column("top_three_ids", postgresql.ARRAY(UUID), nullable=False, server_default="{}"),
        sa.Column("theme", sa.String(160)),
        sa.Column("description", sa.Text()),
        sa.Column("prize_description", sa.Text()),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("awarded_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True)),
        sa.UniqueConstraint("type", "competition_id", name="uq_competition_code_per_type"),
        sa.CheckConstraint("start_date < end_date", name="ck_competition_window"),
        sa.CheckConstraint("total_submissions >= 0", name="ck_competition_total_nonneg"),
    )
    op.create_index("ix_competitions_competition_id", "competitions", ["competition_id"])
    op.create_index("ix_competitions_start_date", "competitions", ["start_date"])
    op.create_index("ix_competitions_status", "competitions", ["status"])

    op.create_table(
        "apps",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("slug", sa.String(160), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("short_description", sa.String(300), nullable=False),
        sa.Column("full_description", sa.Text()),
        sa.Column("website_url", sa.String(2048), nullable=False),
        sa.Column("website_key", sa.String(2048), nullable=False),
        sa.Column("logo_url", sa.String(2048)),
        sa.Column("video_url", sa.String(2048)),
        sa.Column("screenshots", postgresql.ARRAY(sa.Text()), nullable=False, server_default="{}"),
        sa.Column("categories", postgresql.ARRAY(sa.String(64)), nullable=False, server_default="{}"),
        sa.Column("tags", postgresql.ARRAY(sa.String(64)), nullable=False, server_default="{}"),
        sa.Column("pricing", sa.String(16), nullable=False, server_default="Free"),
        sa.Column("maker_name", sa.String(120)),
        sa.Column("maker_twitter", sa.String(120)),
        sa.Column("contact_email", sa.String(320), nullable=False),
        sa.Column("submitted_by", UUID, nullable=False),
        sa.Column("plan", sa.String(16), nullable=False, server_default="standard"),
        sa.Column("premium_badge", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("homepage_duration", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("backlink_url", sa.String(2048)),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_date", sa.TIMESTAMP(timezone=True)),
        sa.Column("order_id", sa.String(128)),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("launch_week", sa.String(16)),
        sa.Column("weekly_competition_id", UUID, sa.ForeignKey("competitions.id", ondelete="SET NULL")),
        sa.Column("entered_weekly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("weekly_competition_ended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("link_type", sa.String(16), nullable=False, server_default="nofollow"),
        sa.Column("dofollow_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dofollow_reason", sa.String(32)),
        sa.Column("dofollow_awarded_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("weekly_winner", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("weekly_position", sa.Integer()),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_engagement", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("homepage_start_date", sa.TIMESTAMP(timezone=True)),
        sa.Column("homepage_end_date", sa.TIMESTAMP(timezone=True)),
        sa.Column("launch_date", sa.TIMESTAMP(timezone=True)),
        sa.Column("published_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("launched_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True)),
        sa.CheckConstraint("weekly_position IS NULL OR weekly_position BETWEEN 1 AND 3", name="ck_apps_weekly_position"),
        sa.CheckConstraint("upvotes >= 0", name="ck_apps_upvotes_nonneg"),
    )
    op.create_index("ix_apps_slug", "apps", ["slug"], unique=True)
    op.create_index("ix_apps_website_key", "apps", ["website_key"])
    op.create_index("ix_apps_submitted_by", "apps", ["submitted_by"])
    op.create_index("ix_apps_status", "apps", ["status"])
    op.create_index("ix_apps_weekly_competition_id", "apps", ["weekly_competition_id"])

    op.create_table(
        "votes",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("app_id", UUID, sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("weekly_competition_id", UUID),
        sa.Column("vote_type", sa.String(16), nullable=False, server_default="upvote"),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.String(512)),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_votes_user_id", "votes", ["user_id"])
    op.create_index("ix_votes_app_id", "votes", ["app_id"])
    op.create_index("ix_votes_weekly_competition_id", "votes", ["weekly_competition_id"])
    op.create_unique_constraint("uq_vote_once_per_user", "votes", ["user_id", "app_id"])

    op.create_table(
        "link_type_changes",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("project_id", UUID, sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_type", sa.String(16), nullable=False),
        sa.Column("to_type", sa.String(16), nullable=False),
        sa.Column("changed_by", sa.String(64), nullable=False),
        sa.Column("reason", sa.String(64), nullable=False),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_link_type_changes_project_id", "link_type_changes", ["project_id"])
    op.create_index("ix_link_type_changes_timestamp", "link_type_changes", ["timestamp"])
    # Journal is append-only at the database level as well.
    op.execute("""
        CREATE OR REPLACE FUNCTION link_type_changes_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'link_type_changes is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_link_type_changes_append_only
        BEFORE UPDATE OR DELETE ON link_type_changes
        FOR EACH ROW EXECUTE FUNCTION link_type_changes_append_only()
    """)

    op.create_table(
        "webhook_logs",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("status_code", sa.Integer()),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("error", sa.Text()),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_webhook_logs_event_type", "webhook_logs", ["event_type"])

def downgrade() -> None:
    op.drop_index("ix_webhook_logs_event_type", table_name="webhook_logs")
    op.drop_table("webhook_logs")
    op.execute("DROP TRIGGER IF EXISTS trg_link_type_changes_append_only ON link_type_changes")
    op.execute("DROP FUNCTION IF EXISTS link_type_changes_append_only()")
    op.drop_table("link_type_changes")
    op.drop_constraint("uq_vote_once_per_user", "votes", type_="unique")
    op.drop_table("votes")
    op.drop_table("apps")
    op.drop_table("competitions")
    op.drop_table("users")
