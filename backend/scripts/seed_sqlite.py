"""
Seed a local SQLite database with sample tours, slots and a discount code.
Run from backend/: python scripts/seed_sqlite.py [--days 30]
"""

from datetime import date, timedelta
import argparse
import os
import sys

# Add backend/ to path for lisbonlovesme imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lisbonlovesme.core.i18n import to_multilingual
from lisbonlovesme.core.security import hash_password
from lisbonlovesme.core.config import settings
from lisbonlovesme.db.models import AdminSetting, Availability, Base, DiscountCode, Tour, User

TOURS = [
    {
        "name": {"en": "Alfama & Fado Walk", "pt": "Passeio Alfama e Fado", "ru": "Прогулка по Алфаме и фаду"},
        "description": to_multilingual("Wander the oldest quarter of Lisbon and end with live fado."),
        "duration": to_multilingual("3 hours"),
        "difficulty": {"en": "Easy", "pt": "Fácil", "ru": "Легко"},
        "max_group_size": 12,
        "price": 4500,
        "price_type": "per_person",
        "badge": to_multilingual("Bestseller"),
        "badge_color": "#e67e22",
    },
    {
        "name": to_multilingual("Sintra Private Day Trip"),
        "description": to_multilingual("Palaces, gardens and the Atlantic coast with a private guide."),
        "duration": to_multilingual("8 hours"),
        "difficulty": {"en": "Moderate", "pt": "Moderado", "ru": "Средне"},
        "max_group_size": 6,
        "price": 32000,
        "price_type": "per_group",
    },
    {
        "name": to_multilingual("Belém Food Tour"),
        "description": to_multilingual("Pastéis de nata, petiscos and local wine around Belém."),
        "duration": to_multilingual("4 hours"),
        "difficulty": {"en": "Easy", "pt": "Fácil", "ru": "Легко"},
        "max_group_size": 10,
        "price": 3000,
        "price_type": "per_person",
    },
]

SLOT_TIMES = ("10:00", "15:00")


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db", default=os.path.join(os.path.dirname(__file__), "..", "lisbonlovesme.db"))
    parser.add_argument("--days", type=int, default=30, help="Days of availability to create")
    args = parser.parse_args()

    db_url = f"sqlite:///{os.path.abspath(args.db)}"
    print(f"Database: {db_url}")

    engine = create_engine(db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
        conn.commit()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("Tables created")

    Session = sessionmaker(bind=engine)
    session = Session()

    session.add(User(username=settings.admin_username,
                     password_hash=hash_password(settings.admin_password), is_admin=True))
    session.add(AdminSetting(id=1, auto_close_day=False))
    session.add(DiscountCode(code="SAVE10", name="Ten percent off", category="percentage", value=10))
    session.add(DiscountCode(code="FREE1", name="One guest free", category="free_tour", value=1,
                             usage_limit=100))

    slots = 0
    start = date.today() + timedelta(days=1)
    for data in TOURS:
        data = dict(data)
        data.setdefault("short_description", data["description"])
        tour = Tour(image_url="", **data)
        session.add(tour)
        session.flush()
        for offset in range(args.days):
            day = (start + timedelta(days=offset)).isoformat()
            for slot_time in SLOT_TIMES:
                session.add(Availability(tour_id=tour.id, date=day, time=slot_time,
                                         max_spots=tour.max_group_size, spots_left=tour.max_group_size))
                slots += 1

    session.commit()
    print(f"\nDone! {len(TOURS)} tours, {slots} availability slots, 2 discount codes")
    print(f"Admin login: {settings.admin_username}")

    session.close()
    engine.dispose()


if __name__ == "__main__":
    main()
