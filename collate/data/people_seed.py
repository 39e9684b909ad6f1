from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from collate.models.person import Person


UTC = timezone.utc

FIRST_NAMES = [
    "Alexander", "Benjamin", "Christopher", "Daniel", "Edward", "Frederick", "Gabriel", "Harrison", "Isabella", "Jonathan",
    "Katherine", "Leonardo", "Margaret", "Nathaniel", "Olivia", "Patricia", "Quentin", "Rebecca", "Sebastian", "Theodore",
    "Victoria", "William", "Xavier", "Yvonne", "Zachary", "Amelia", "José", "Zoë", "Dominik", "Eleanor",
]

LAST_NAMES = [
    "Anderson", "Brown", "Carter", "Davis", "Evans", "Fisher", "García", "Harris", "Johnson", "King",
    "Lewis", "Miller", "Nelson", "O'Connor", "Parker", "Quinn", "Roberts", "Smith", "Taylor", "Underwood",
    "Valdez", "Wilson", "Xavier", "Young", "Zhang", "Adams", "Bell", "Novák", "Dvořák", "Šimková",
]

COUNTRIES = ["Slovakia", "Czechia", "Austria", "Poland", "Hungary", "Germany", "Spain", "France", "Italy", "Portugal"]
STATUSES = ["new", "active", "blocked"]


def _email(first_name: str, last_name: str) -> str:
    local = f"{first_name} {last_name}".lower().replace(" ", ".").replace("'", "")
    return f"{local}@example.com"


def random_person(rng: random.Random, now: datetime) -> Person:
    first_name = rng.choice(FIRST_NAMES)
    last_name = rng.choice(LAST_NAMES)
    last_login = None
    if rng.randint(0, 1):
        last_login = now - timedelta(days=rng.randint(0, 99))
    return Person(
        name=first_name,
        surname=last_name,
        email=_email(first_name, last_name),
        country=rng.choice(COUNTRIES),
        status=rng.choice(STATUSES),
        active=bool(rng.randint(0, 1)),
        created_at=now - timedelta(days=rng.randint(0, 199)),
        last_login=last_login,
    )


def seed_people(db: Session, count: int, *, seed: int | None = None) -> int:
    """Insert ``count`` demo people unless the table already has rows."""
    if db.query(Person).count() > 0:
        return 0
    rng = random.Random(seed)
    now = datetime.now(UTC).replace(microsecond=0)
    db.add_all([random_person(rng, now) for _ in range(count)])
    db.commit()
    return count
