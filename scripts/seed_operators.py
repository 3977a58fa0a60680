"""
Seed script: register till operators for a pharmacy location and print tokens.

What it creates:
- Operators (owner, cashier, accountant) active in the operator directory.
- Memberships of each operator in the given location with its role.
- A context token per operator (type=context, bound to the location) so
  terminals and curl sessions can call the till API right away.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_operators.py --location PHARM-1

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
from datetime import timedelta

from app.common.validators import normalize_location_id
from app.database.database import SessionLocal
from app.modules.auth.models import User, UserLocation
from app.modules.auth.utils import create_context_token

OPERATORS = [
    ("owner", "Dona", "Farmacia"),
    ("cashier", "Carla", "Caixa"),
    ("accountant", "Conta", "Bilidade"),
]


def get_or_create_user(db, email: str, first_name: str, last_name: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(email=email, first_name=first_name, last_name=last_name, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def link_user_location(db, user_id, location_id: str, role: str) -> UserLocation:
    rel = db.query(UserLocation).filter(
        UserLocation.user_id == user_id,
        UserLocation.location_id == location_id,
    ).first()
    if rel:
        return rel
    rel = UserLocation(user_id=user_id, location_id=location_id, role=role, is_active=True)
    db.add(rel)
    db.commit()
    return rel


def main():
    parser = argparse.ArgumentParser(description="Seed till operators for a location")
    parser.add_argument("--location", default="PHARM-1")
    parser.add_argument("--domain", default="farmacia.local")
    parser.add_argument("--token-hours", type=int, default=12)
    args = parser.parse_args()

    location_id = normalize_location_id(args.location)

    db = SessionLocal()
    try:
        print(f"Location: {location_id}")
        for role, first_name, last_name in OPERATORS:
            user = get_or_create_user(db, f"{role}@{args.domain}", first_name, last_name)
            link_user_location(db, user.id, location_id, role)
            token = create_context_token(
                {"sub": str(user.id), "location_id": location_id, "user_role": role},
                expires_delta=timedelta(hours=args.token_hours),
            )
            print(f"\n{role}: {user.full_name} <{user.email}>")
            print(f"  User ID: {user.id}")
            print(f"  Authorization: Bearer {token}")
        print("\nSeed completed.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
