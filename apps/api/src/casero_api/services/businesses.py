"""Business directory: business profiles and the name-ordered browse feed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from loguru import logger

from casero_api.core.settings import settings
from casero_api.db.store import DocumentStore, asc, desc, where
from casero_api.models import Business
from casero_api.models.business import MAX_BUSINESS_CATEGORIES
from casero_api.schemas.loyalty import BusinessRecord
from casero_api.services.memberships.errors import NotFoundError

_IMMUTABLE_FIELDS = {"id", "owner_id", "created_at"}
_PROFILE_FIELDS = {
    "name",
    "description",
    "logo_url",
    "address",
    "phone",
    "city",
    "instagram",
    "facebook",
    "tiktok",
    "categories",
    "is_active",
}


@dataclass(slots=True)
class BusinessPage:
    items: list[Business] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


def _normalize_categories(categories: Iterable[str] | None) -> list[str]:
    cleaned = list(dict.fromkeys(category.strip() for category in categories or () if category and category.strip()))
    if len(cleaned) > MAX_BUSINESS_CATEGORIES:
        raise ValueError(f"A business can list at most {MAX_BUSINESS_CATEGORIES} categories")
    return cleaned


def _clean(values: Mapping[str, Any]) -> dict[str, Any]:
    """Drop unset and blank values so partial updates never erase a field."""

    return {key: value for key, value in values.items() if value is not None and value != ""}


class BusinessDirectory:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create(self, *, owner_id: str, name: str, **profile: Any) -> BusinessRecord:
        unknown = set(profile) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown business fields: {', '.join(sorted(unknown))}")
        if not name or not name.strip():
            raise ValueError("Business name is required")
        payload = _clean(profile)
        payload["categories"] = _normalize_categories(payload.get("categories"))
        business = await self._store.add(Business, owner_id=owner_id, name=name.strip(), **payload)
        logger.info("Business created", business_id=business.id, owner_id=owner_id)
        return BusinessRecord.model_validate(business)

    async def get(self, business_id: str) -> BusinessRecord | None:
        business = await self._store.get(Business, business_id)
        return BusinessRecord.model_validate(business) if business is not None else None

    async def get_by_owner(self, owner_id: str) -> BusinessRecord | None:
        business = await self._store.first(Business, where("owner_id", "==", owner_id))
        return BusinessRecord.model_validate(business) if business is not None else None

    async def list_by_owner(self, owner_id: str) -> list[BusinessRecord]:
        rows = await self._store.query(Business, where("owner_id", "==", owner_id), order_by=[desc("created_at")])
        return [BusinessRecord.model_validate(row) for row in rows]

    async def update(self, business_id: str, **changes: Any) -> BusinessRecord:
        forbidden = set(changes) & _IMMUTABLE_FIELDS
        if forbidden:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(forbidden))}")
        unknown = set(changes) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown business fields: {', '.join(sorted(unknown))}")

        values = _clean(changes)
        if "categories" in values:
            values["categories"] = _normalize_categories(values["categories"])
        if values and not await self._store.update(Business, business_id, values):
            raise NotFoundError("businesses", business_id)

        business = await self._store.get(Business, business_id)
        if business is None:
            raise NotFoundError("businesses", business_id)
        return BusinessRecord.model_validate(business)

    async def page(self, page_size: int | None = None, cursor: str | None = None) -> BusinessPage:
        """Active businesses ordered by name, resuming after the ``cursor`` business.

        An unknown cursor restarts from the first page.
        """
        size = settings.discovery_page_size if page_size is None else page_size
        size = max(1, min(size, settings.business_page_size_max))

        anchor = None
        if cursor:
            anchor = await self._store.get(Business, cursor)
            if anchor is None:
                logger.warning("Business page cursor not found; restarting", cursor=cursor)

        rows = await self._store.query(
            Business,
            where("is_active", "==", True),
            order_by=[asc("name")],
            limit=size + 1,
            start_after=anchor,
        )
        has_more = len(rows) > size
        items = rows[:size]
        next_cursor = items[-1].id if has_more and items else None
        return BusinessPage(items=items, next_cursor=next_cursor, has_more=has_more)


__all__ = ["BusinessDirectory", "BusinessPage"]
