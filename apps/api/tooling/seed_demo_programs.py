"""Seed a demo business, its loyalty program and a few customers into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from casero_api.core.logging import configure_logging
from casero_api.core.settings import settings
from casero_api.db.base import Base
from casero_api.db.session import get_engine
from casero_api.db.store import DocumentStore, where
from casero_api.models import User, UserTypeEnum
from casero_api.services.businesses import BusinessDirectory
from casero_api.services.memberships import AlreadyMemberError, MembershipRegistry, StampLedger
from casero_api.services.programs import LoyaltyProgramCatalog


class SeedUser(TypedDict):
    email: str
    display_name: str
    user_type: str
    stamps: int


OWNER: SeedUser = {
    "email": os.getenv("DEMO_OWNER_EMAIL", "owner@casero.dev").lower(),
    "display_name": "Demo Owner",
    "user_type": UserTypeEnum.BUSINESS.value,
    "stamps": 0,
}

CUSTOMERS: list[SeedUser] = [
    {"email": "ana@casero.dev", "display_name": "Ana", "user_type": UserTypeEnum.CUSTOMER.value, "stamps": 0},
    {"email": "bruno@casero.dev", "display_name": "Bruno", "user_type": UserTypeEnum.CUSTOMER.value, "stamps": 3},
    {"email": "carmen@casero.dev", "display_name": "Carmen", "user_type": UserTypeEnum.CUSTOMER.value, "stamps": 8},
]


async def ensure_user(store: DocumentStore, user: SeedUser) -> User:
    existing = await store.first(User, where("email", "==", user["email"]))
    if existing is not None:
        await store.update(User, existing.id, {"display_name": user["display_name"], "user_type": user["user_type"]})
        return existing
    return await store.add(User, email=user["email"], display_name=user["display_name"], user_type=user["user_type"])


async def seed_demo(store: DocumentStore) -> None:
    owner = await ensure_user(store, OWNER)
    directory = BusinessDirectory(store)
    catalog = LoyaltyProgramCatalog(store)

    business = await directory.get_by_owner(owner.id)
    if business is None:
        business = await directory.create(
            owner_id=owner.id,
            name="Casero Demo Café",
            description="Coffee and pastries for the demo environment",
            city="Quito",
            categories=["coffee", "bakery"],
        )
    programs = await catalog.list_for_business(business.id, active_only=True)
    program = programs[0] if programs else await catalog.create(
        business_id=business.id,
        total_slots=8,
        reward_description="Free coffee of your choice",
        card_color="#6b3e26",
        stamp_shape="star",
    )

    registry = MembershipRegistry(store)
    ledger = StampLedger(store)
    for customer in CUSTOMERS:
        user = await ensure_user(store, customer)
        try:
            card = await registry.join(user.id, program.id)
        except AlreadyMemberError:
            continue
        for _ in range(min(customer["stamps"], program.total_slots)):
            await ledger.add_stamp(card.id, user.id, business.id, program.id)


async def main() -> None:
    configure_logging(environment=settings.environment)
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        await seed_demo(DocumentStore.from_settings())
        print("Demo loyalty program ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
