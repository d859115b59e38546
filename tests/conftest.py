import os
from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.auth import create_access_token  # noqa: E402
from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import Hotel, RoleEnum, Room  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.bookings.app import booking_service  # noqa: E402
from services.bookings.service import BookingService  # noqa: E402

HOST_ID = "host-1"
GUEST_ID = "guest-1"
OTHER_GUEST_ID = "guest-2"


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    booking_service.availability_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def service() -> BookingService:
    return BookingService(SessionLocal)


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def make_room(db_session) -> Callable[..., Room]:
    """Create a room (and its hotel) straight in the catalog tables."""

    def factory(
        quantity: int = 1,
        price: str = "100.00",
        capacity_adults: int = 2,
        capacity_children: int = 0,
        owner_id: str = HOST_ID,
        is_active: bool = True,
    ) -> Room:
        hotel = Hotel(owner_id=owner_id, name=f"{owner_id} hotel")
        db_session.add(hotel)
        db_session.flush()
        room = Room(
            hotel_id=hotel.id,
            name="Deluxe Suite",
            price_per_night=Decimal(price),
            capacity_adults=capacity_adults,
            capacity_children=capacity_children,
            quantity=quantity,
            is_active=is_active,
        )
        db_session.add(room)
        db_session.commit()
        return room

    return factory


def auth_header(user_id: str, role: RoleEnum = RoleEnum.GUEST) -> dict[str, str]:
    token = create_access_token({"sub": user_id, "role": role.value})
    return {"Authorization": f"Bearer {token}"}
