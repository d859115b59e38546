#!/usr/bin/env python3
"""Create the booking overlap indexes on a database that predates them."""
from sqlalchemy import create_engine, text

from common.config import get_settings

INDEXES = (
    "CREATE INDEX IF NOT EXISTS ix_bookings_room_check_in ON bookings (room_id, check_in);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_room_check_out ON bookings (room_id, check_out);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_user_id ON bookings (user_id);",
    "CREATE INDEX IF NOT EXISTS ix_bookings_hotel_id ON bookings (hotel_id);",
    "CREATE INDEX IF NOT EXISTS ix_rooms_hotel_id ON rooms (hotel_id);",
    "CREATE INDEX IF NOT EXISTS ix_hotels_owner_id ON hotels (owner_id);",
)


def add_indexes(database_url: str) -> None:
    engine = create_engine(database_url)
    with engine.begin() as conn:
        for statement in INDEXES:
            conn.execute(text(statement))
    print("Indexes added successfully.")


if __name__ == "__main__":
    add_indexes(get_settings().database_url)
