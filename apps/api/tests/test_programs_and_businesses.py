import pytest

from casero_api.services.businesses import BusinessDirectory
from casero_api.services.memberships import MembershipRegistry, NotFoundError
from casero_api.services.programs import LoyaltyProgramCatalog


@pytest.mark.asyncio
async def test_create_business_normalizes_profile(store) -> None:
    directory = BusinessDirectory(store)

    business = await directory.create(
        owner_id="owner-1",
        name="  Panadería Sol ",
        city="Quito",
        phone="",
        categories=["bakery", "bakery", "coffee"],
    )

    assert business.name == "Panadería Sol"
    assert business.phone is None
    assert business.categories == ["bakery", "coffee"]
    assert (await directory.get_by_owner("owner-1")).id == business.id


@pytest.mark.asyncio
async def test_business_accepts_at_most_two_categories(store) -> None:
    directory = BusinessDirectory(store)

    with pytest.raises(ValueError):
        await directory.create(owner_id="owner", name="Shop", categories=["a", "b", "c"])


@pytest.mark.asyncio
async def test_update_business_ignores_blank_values(store, seed) -> None:
    directory = BusinessDirectory(store)

    updated = await directory.update(seed.business.id, description="", city="Cuenca")

    assert updated.description == "Neighbourhood coffee"
    assert updated.city == "Cuenca"
    with pytest.raises(ValueError):
        await directory.update(seed.business.id, owner_id="someone-else")
    with pytest.raises(NotFoundError):
        await directory.update("missing", city="Loja")


@pytest.mark.asyncio
async def test_list_by_owner(store, seed) -> None:
    directory = BusinessDirectory(store)
    await directory.create(owner_id=seed.owner.id, name="Second Branch")

    names = [business.name for business in await directory.list_by_owner(seed.owner.id)]

    assert sorted(names) == ["Café Aurora", "Second Branch"]


@pytest.mark.asyncio
async def test_create_program_validates_slots(store, seed) -> None:
    catalog = LoyaltyProgramCatalog(store)

    program = await catalog.create(business_id=seed.business.id, total_slots=10, reward_description="Free pastry")

    assert program.total_slots == 10
    assert program.business_name == "Café Aurora"
    assert program.stamp_shape == "circle"
    for slots in (2, 21):
        with pytest.raises(ValueError):
            await catalog.create(business_id=seed.business.id, total_slots=slots, reward_description="Nope")
    with pytest.raises(NotFoundError):
        await catalog.create(business_id="missing", total_slots=5, reward_description="Nope")


@pytest.mark.asyncio
async def test_total_slots_cannot_change(store, seed) -> None:
    catalog = LoyaltyProgramCatalog(store)

    updated = await catalog.update(seed.program.id, total_slots=3, card_color="#ff8800", stamp_shape="star")

    assert updated.card_color == "#ff8800"
    assert updated.stamp_shape == "star"
    with pytest.raises(ValueError):
        await catalog.update(seed.program.id, total_slots=8)
    with pytest.raises(ValueError):
        await catalog.update(seed.program.id, business_id="elsewhere")


@pytest.mark.asyncio
async def test_deactivate_keeps_memberships(store, seed) -> None:
    catalog = LoyaltyProgramCatalog(store)
    card = await MembershipRegistry(store).join(seed.customer.id, seed.program.id)

    assert await catalog.deactivate(seed.program.id) is True
    assert await catalog.deactivate(seed.program.id) is False

    program = await catalog.get(seed.program.id)
    assert program.is_active is False
    assert await catalog.list_active() == []
    assert await MembershipRegistry(store).get(card.id) is not None
    with pytest.raises(NotFoundError):
        await catalog.deactivate("missing")


@pytest.mark.asyncio
async def test_list_for_businesses_spans_in_limit(store) -> None:
    directory = BusinessDirectory(store)
    catalog = LoyaltyProgramCatalog(store)
    business_ids = []
    for index in range(14):
        business = await directory.create(owner_id="owner", name=f"Shop {index}")
        await catalog.create(business_id=business.id, total_slots=5, reward_description="Gift")
        business_ids.append(business.id)

    programs = await catalog.list_for_businesses(business_ids)

    assert {program.business_id for program in programs} == set(business_ids)
    assert all(program.business_name.startswith("Shop ") for program in programs)
    assert len(await catalog.list_for_business(business_ids[0], active_only=True)) == 1
