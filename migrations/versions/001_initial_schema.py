"""Initial schema: users, rides and notification inbox.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

# Enum columns are stored as plain strings (lowercase values)
ACTOR_ROLE = sa.Enum(
    "passenger", "rider", name="actor_role", native_enum=False, length=20
)
ONBOARDING_STATUS = sa.Enum(
    "incomplete", "pending", "approved",
    name="onboarding_status", native_enum=False, length=20,
)
RIDE_STATUS = sa.Enum(
    "pending", "accepted", "picked_up", "completed", "cancelled", "rated",
    name="ride_status", native_enum=False, length=20,
)
NOTIFICATION_KIND = sa.Enum(
    "ride_accepted", "ride_picked_up", "ride_completed",
    "ride_cancelled", "new_rating",
    name="notification_kind", native_enum=False, length=20,
)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", ACTOR_ROLE, nullable=False),
        sa.Column("rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_ratings", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_rides", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "onboarding_status",
            ONBOARDING_STATUS,
            nullable=False,
            server_default="incomplete",
        ),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("push_token", sa.String(255), nullable=True),
        sa.Column("vehicle_model", sa.String(120), nullable=True),
        sa.Column("vehicle_color", sa.String(60), nullable=True),
        sa.Column("vehicle_plate", sa.String(30), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "passenger_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("rider_id", sa.String(64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", RIDE_STATUS, nullable=False, server_default="pending"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("rider_info", sa.JSON, nullable=True),
        sa.Column("rider_lat", sa.Float, nullable=True),
        sa.Column("rider_lng", sa.Float, nullable=True),
        sa.Column("fare", sa.Float, nullable=True),
        sa.Column("estimated_duration", sa.Float, nullable=True),
        sa.Column("cancelled_by", ACTOR_ROLE, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("passenger_rating", sa.Integer, nullable=True),
        sa.Column("passenger_feedback", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_passenger", "rides", ["passenger_id"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])

    # ── notifications ─────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("kind", NOTIFICATION_KIND, nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=True),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_notifications_user_created", "notifications", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("rides")
    op.drop_table("users")
