"""initial schema

Revision ID: 4e1a7c9b2d10
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4e1a7c9b2d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    """Create users, sessions, vendor directory, community and survey tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    # Accounts
    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False, server_default=""),
            sa.Column("first_name", sa.String(100), nullable=True),
            sa.Column("last_name", sa.String(100), nullable=True),
            sa.Column("avatar", sa.String(1024), nullable=True),
            sa.Column("role", sa.String(32), nullable=False, server_default="USER"),
            sa.Column("status", sa.String(32), nullable=False, server_default="PENDING_VERIFICATION"),
            sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("email_verification_token", sa.String(64), nullable=True, unique=True),
            sa.Column("email_verification_expires", sa.DateTime(), nullable=True),
            sa.Column("password_reset_token", sa.String(64), nullable=True, unique=True),
            sa.Column("password_reset_expires", sa.DateTime(), nullable=True),
            sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("lockout_until", sa.DateTime(), nullable=True),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            sa.Column("google_id", sa.String(255), nullable=True, unique=True),
            sa.Column("microsoft_id", sa.String(255), nullable=True, unique=True),
            *_timestamps(),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_status", "users", ["status"])

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
            sa.Column("bio", sa.String(500), nullable=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("date_of_birth", sa.Date(), nullable=True),
            sa.Column("gender", sa.String(32), nullable=True),
            sa.Column("country", sa.String(100), nullable=True),
            sa.Column("state", sa.String(100), nullable=True),
            sa.Column("city", sa.String(100), nullable=True),
            sa.Column("address", sa.String(255), nullable=True),
            sa.Column("postal_code", sa.String(20), nullable=True),
            sa.Column("job_title", sa.String(100), nullable=True),
            sa.Column("company", sa.String(100), nullable=True),
            sa.Column("industry", sa.String(100), nullable=True),
            sa.Column("experience_years", sa.Integer(), nullable=True),
            sa.Column("website", sa.String(255), nullable=True),
            sa.Column("linkedin", sa.String(255), nullable=True),
            sa.Column("twitter", sa.String(255), nullable=True),
            sa.Column("github", sa.String(255), nullable=True),
            sa.Column("language", sa.String(10), nullable=False, server_default="en"),
            sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("push_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )

    if "sessions" not in existing_tables:
        op.create_table(
            "sessions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token", sa.String(1024), nullable=False, unique=True),
            sa.Column("refresh_token", sa.String(1024), nullable=False, unique=True),
            sa.Column("device_info", sa.String(255), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("refresh_expires_at", sa.DateTime(), nullable=False),
            *_timestamps(),
        )
        op.create_index("idx_sessions_user", "sessions", ["user_id"])

    if "oauth_states" not in existing_tables:
        op.create_table(
            "oauth_states",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("state", sa.String(64), nullable=False, unique=True),
            sa.Column("provider", sa.String(32), nullable=False),
            sa.Column("redirect_url", sa.String(1024), nullable=False, server_default="/"),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            *_timestamps(updated=False),
        )

    if "platform_settings" not in existing_tables:
        op.create_table(
            "platform_settings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("value", sa.Text(), nullable=False, server_default=""),
            sa.Column("type", sa.String(32), nullable=False, server_default="string"),
            sa.Column("description", sa.String(512), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )
        op.create_index("idx_audit_events_action", "audit_events", ["action"])

    # Vendor directory
    if "vendors" not in existing_tables:
        op.create_table(
            "vendors",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True),
            sa.Column("company_name", sa.String(255), nullable=False),
            sa.Column("business_name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("website", sa.String(255), nullable=True),
            sa.Column("logo", sa.String(1024), nullable=True),
            sa.Column("address", sa.String(255), nullable=True),
            sa.Column("city", sa.String(100), nullable=True),
            sa.Column("state", sa.String(100), nullable=True),
            sa.Column("country", sa.String(100), nullable=True),
            sa.Column("postal_code", sa.String(20), nullable=True),
            sa.Column("business_type", sa.String(100), nullable=False),
            sa.Column("year_established", sa.Integer(), nullable=True),
            sa.Column("employee_count", sa.String(32), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="PENDING_APPROVAL"),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("average_rating", sa.Float(), nullable=False, server_default="0"),
            sa.Column("total_reviews", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
        )
        op.create_index("idx_vendors_status", "vendors", ["status"])
        op.create_index("idx_vendors_country_city", "vendors", ["country", "city"])
        op.create_index("idx_vendors_rating", "vendors", ["average_rating"])

    if "vendor_services" not in existing_tables:
        op.create_table(
            "vendor_services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(64), nullable=False),
            sa.Column("subcategory", sa.String(100), nullable=True),
            sa.Column("base_price", sa.Float(), nullable=True),
            sa.Column("price_unit", sa.String(32), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(updated=False),
        )

    if "reviews" not in existing_tables:
        op.create_table(
            "reviews",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("overall_rating", sa.Integer(), nullable=False),
            sa.Column("quality_rating", sa.Integer(), nullable=True),
            sa.Column("communication_rating", sa.Integer(), nullable=True),
            sa.Column("timeliness_rating", sa.Integer(), nullable=True),
            sa.Column("value_rating", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.UniqueConstraint("vendor_id", "user_id", name="uq_reviews_vendor_user"),
        )
        op.create_index("idx_reviews_vendor_status", "reviews", ["vendor_id", "status"])

    # Community
    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False, unique=True),
            sa.Column("slug", sa.String(120), nullable=False, unique=True),
            sa.Column("description", sa.String(500), nullable=True),
            sa.Column("color", sa.String(16), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(updated=False),
        )

    if "posts" not in existing_tables:
        op.create_table(
            "posts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("excerpt", sa.String(500), nullable=True),
            sa.Column("slug", sa.String(255), nullable=False, unique=True),
            sa.Column("type", sa.String(32), nullable=False, server_default="ARTICLE"),
            sa.Column("status", sa.String(32), nullable=False, server_default="PUBLISHED"),
            sa.Column("tags", sa.String(500), nullable=True),
            sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("published_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_posts_status_published", "posts", ["status", "published_at"])
        op.create_index("idx_posts_category", "posts", ["category_id"])

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("parent_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="PUBLISHED"),
            sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
        )
        op.create_index("idx_comments_post_status", "comments", ["post_id", "status"])

    if "category_follows" not in existing_tables:
        op.create_table(
            "category_follows",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="CASCADE"), nullable=False),
            *_timestamps(updated=False),
            sa.UniqueConstraint("user_id", "category_id", name="uq_category_follows_user_category"),
        )

    if "post_follows" not in existing_tables:
        op.create_table(
            "post_follows",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
            *_timestamps(updated=False),
            sa.UniqueConstraint("user_id", "post_id", name="uq_post_follows_user_post"),
        )

    # AI readiness surveys
    if "surveys" not in existing_tables:
        op.create_table(
            "surveys",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("instructions", sa.Text(), nullable=True),
            sa.Column("category", sa.String(100), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("time_limit", sa.Integer(), nullable=True),
            sa.Column("max_attempts", sa.Integer(), nullable=True),
            sa.Column("passing_score", sa.Float(), nullable=True),
            sa.Column("total_responses", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("average_score", sa.Float(), nullable=True),
            sa.Column(
                "created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("published_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_surveys_status", "surveys", ["status"])

    if "questions" not in existing_tables:
        op.create_table(
            "questions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("survey_id", sa.Integer(), sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("type", sa.String(32), nullable=False, server_default="SINGLE_CHOICE"),
            sa.Column("options", sa.JSON(), nullable=True),
            sa.Column("min_value", sa.Integer(), nullable=True),
            sa.Column("max_value", sa.Integer(), nullable=True),
            sa.Column("dimension", sa.String(64), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_score", sa.Float(), nullable=False, server_default="1"),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(updated=False),
        )
        op.create_index("idx_questions_survey_order", "questions", ["survey_id", "order"])

    if "survey_responses" not in existing_tables:
        op.create_table(
            "survey_responses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("survey_id", sa.Integer(), sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("total_score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("max_score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("percentage", sa.Float(), nullable=False, server_default="0"),
            sa.Column("grade", sa.String(32), nullable=False),
            sa.Column("passed", sa.Boolean(), nullable=True),
            sa.Column("dimension_scores", sa.JSON(), nullable=True),
            sa.Column("time_spent", sa.Integer(), nullable=True),
            sa.Column("device_info", sa.String(255), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("feedback", sa.Text(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            *_timestamps(updated=False),
        )
        op.create_index("idx_survey_responses_survey_user", "survey_responses", ["survey_id", "user_id"])

    if "question_responses" not in existing_tables:
        op.create_table(
            "question_responses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "response_id", sa.Integer(), sa.ForeignKey("survey_responses.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("question_id", sa.Integer(), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
            sa.Column("answer", sa.JSON(), nullable=True),
            sa.Column("score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("time_spent", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
        )


def downgrade() -> None:
    for table in (
        "question_responses",
        "survey_responses",
        "questions",
        "surveys",
        "post_follows",
        "category_follows",
        "comments",
        "posts",
        "categories",
        "reviews",
        "vendor_services",
        "vendors",
        "audit_events",
        "platform_settings",
        "oauth_states",
        "sessions",
        "profiles",
        "users",
    ):
        op.drop_table(table)
