"""Initial schema: users, catalog, bookings, seat holds, loyalty, notifications.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "stations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_stations_id", "stations", ["id"])

    op.create_table(
        "trains",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("train_number", sa.String(50), nullable=False, unique=True),
        sa.Column("type", sa.String(50), nullable=True),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_seats > 0", name="check_train_total_seats_positive"),
    )
    op.create_index("ix_trains_id", "trains", ["id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("train_id", sa.Integer(), sa.ForeignKey("trains.id"), nullable=False),
        sa.Column("from_station_id", sa.Integer(), sa.ForeignKey("stations.id"), nullable=False),
        sa.Column("to_station_id", sa.Integer(), sa.ForeignKey("stations.id"), nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'OnTime'")),
        sa.Column("delay_minutes", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("arrival_time > departure_time", name="check_trip_arrival_after_departure"),
        sa.CheckConstraint(
            "status IN ('OnTime', 'Delayed', 'Cancelled', 'Arrived')",
            name="check_trip_status",
        ),
        sa.CheckConstraint("delay_minutes IS NULL OR delay_minutes >= 0", name="check_trip_delay_non_negative"),
    )
    op.create_index("ix_trips_id", "trips", ["id"])
    op.create_index("ix_trips_train_id", "trips", ["train_id"])
    # Upcoming listing: WHERE departure_time >= now ORDER BY departure_time
    op.create_index("ix_trips_departure_time", "trips", ["departure_time"])
    # Live view and the cleanup sweeper filter on arrival_time
    op.create_index("ix_trips_arrival_time", "trips", ["arrival_time"])
    # Route search: WHERE from = ? AND to = ? ORDER BY departure_time
    op.create_index("ix_trips_route_departure", "trips", ["from_station_id", "to_station_id", "departure_time"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.Column("passenger_name", sa.String(255), nullable=False),
        sa.Column("passenger_phone", sa.String(32), nullable=False),
        sa.Column("passenger_email", sa.String(255), nullable=True),
        sa.Column("price", sa.Numeric(10, 3), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("booking_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PendingPayment'")),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("seat_number > 0", name="check_booking_seat_positive"),
        sa.CheckConstraint("price >= 0", name="check_booking_price_non_negative"),
        sa.CheckConstraint(
            "status IN ('PendingPayment', 'Confirmed', 'Cancelled')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Loyalty balance: a user's confirmed bookings
    op.create_index("ix_bookings_user_status", "bookings", ["user_id", "status"])
    # Delay fan-out: a trip's non-cancelled bookings
    op.create_index("ix_bookings_trip_status", "bookings", ["trip_id", "status"])

    # One row per held seat. The primary key is what makes a double
    # booking impossible across processes.
    op.create_table(
        "seat_holds",
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), primary_key=True),
        sa.Column("seat_number", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("held_since", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "point_redemptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("points_redeemed", sa.Integer(), nullable=False),
        sa.Column("redemption_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.CheckConstraint("points_redeemed > 0", name="check_redemption_points_positive"),
    )
    op.create_index("ix_point_redemptions_user_id", "point_redemptions", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=True),
        sa.Column("booking_id", sa.Uuid(), nullable=True),
        sa.Column("is_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_trip_id", "notifications", ["trip_id"])
    op.create_index("ix_notifications_booking_id", "notifications", ["booking_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("point_redemptions")
    op.drop_table("seat_holds")
    op.drop_table("bookings")
    op.drop_table("trips")
    op.drop_table("trains")
    op.drop_table("stations")
    op.drop_table("users")
