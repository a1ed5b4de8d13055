"""
Repository helpers for gigs, lineup roles and the people attached to them.

Rows are validated into domain models here so services never see loosely
typed joined rows.
"""

from collections.abc import Sequence
from datetime import date
from typing import Any

from gigsync.db.row_store import Filter, RowStore, eq, gte, in_, row_store
from gigsync.errors import NotFound
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.gig_domain import INACTIVE_STATUSES, Gig, GigRole

logger = get_logger(__name__)

GIGS = "gigs"
GIG_ROLES = "gig_roles"
PROFILES = "profiles"
CONTACTS = "musician_contacts"
BANDS = "bands"


class GigRepository:
    """Persistence helpers for gigs and their lineup."""

    def __init__(self, store: RowStore):
        self._store = store

    async def get_gig(self, gig_id: str) -> Gig:
        row = await self._store.select_one(GIGS, [eq("id", gig_id)])
        if row is None:
            raise NotFound(f"Gig {gig_id} not found")
        return Gig.model_validate(row)

    async def find_gig(self, filters: Sequence[Filter]) -> Gig | None:
        row = await self._store.select_one(GIGS, filters)
        return Gig.model_validate(row) if row else None

    async def insert_gig(self, values: dict[str, Any]) -> Gig:
        return Gig.model_validate(await self._store.insert(GIGS, values))

    async def update_gig(self, gig_id: str, values: dict[str, Any]) -> int:
        return await self._store.update(GIGS, values, [eq("id", gig_id)])

    async def get_role(self, role_id: str) -> GigRole:
        row = await self._store.select_one(GIG_ROLES, [eq("id", role_id)])
        if row is None:
            raise NotFound(f"Gig role {role_id} not found")
        return GigRole.model_validate(row)

    async def list_roles(self, gig_id: str, *extra: Filter) -> list[GigRole]:
        rows = await self._store.select(GIG_ROLES, [eq("gig_id", gig_id), *extra])
        return [GigRole.model_validate(row) for row in rows]

    async def list_roles_by_ids(self, role_ids: Sequence[str]) -> list[GigRole]:
        if not role_ids:
            return []
        rows = await self._store.select(GIG_ROLES, [in_("id", list(role_ids))])
        return [GigRole.model_validate(row) for row in rows]

    async def insert_role(self, values: dict[str, Any]) -> GigRole:
        return GigRole.model_validate(await self._store.insert(GIG_ROLES, values))

    async def update_role(self, role_id: str, values: dict[str, Any]) -> int:
        return await self._store.update(GIG_ROLES, values, [eq("id", role_id)])

    async def roles_for_musician(self, user_id: str, status: str) -> list[GigRole]:
        rows = await self._store.select(
            GIG_ROLES, [eq("musician_id", user_id), eq("invitation_status", status)]
        )
        return [GigRole.model_validate(row) for row in rows]

    async def gigs_by_ids(
        self, gig_ids: Sequence[str], on_or_after: date | None = None
    ) -> list[Gig]:
        if not gig_ids:
            return []
        filters = [in_("id", list(gig_ids))]
        if on_or_after is not None:
            filters.append(gte("date", on_or_after))
        rows = await self._store.select(GIGS, filters)
        return [Gig.model_validate(row) for row in rows]

    async def is_participant(self, gig_id: str, user_id: str) -> bool:
        row = await self._store.select_one(
            GIG_ROLES, [eq("gig_id", gig_id), eq("musician_id", user_id)]
        )
        return row is not None

    async def gigs_for_user_on(
        self, user_id: str, day: date, exclude_gig_id: str | None = None
    ) -> list[Gig]:
        """Owned gigs plus gigs where the user holds a still-active role, on ``day``."""
        owned = await self._store.select(GIGS, [eq("owner_id", user_id), eq("date", day)])

        role_rows = await self._store.select(
            GIG_ROLES, [eq("musician_id", user_id)], columns=["gig_id", "invitation_status"]
        )
        assigned_ids = {
            str(row["gig_id"])
            for row in role_rows
            if row.get("invitation_status") not in INACTIVE_STATUSES
        }
        assigned = []
        if assigned_ids:
            assigned = await self._store.select(
                GIGS, [in_("id", sorted(assigned_ids)), eq("date", day)]
            )

        gigs: dict[str, Gig] = {}
        for row in [*owned, *assigned]:
            gig = Gig.model_validate(row)
            if gig.id != exclude_gig_id:
                gigs[gig.id] = gig
        return list(gigs.values())

    # People

    async def get_profile(self, user_id: str | None) -> dict[str, Any] | None:
        if not user_id:
            return None
        return await self._store.select_one(PROFILES, [eq("id", user_id)])

    async def find_profile_by_email(self, email: str) -> dict[str, Any] | None:
        return await self._store.select_one(PROFILES, [eq("email", email.strip().lower())])

    async def get_contact(self, contact_id: str | None) -> dict[str, Any] | None:
        if not contact_id:
            return None
        return await self._store.select_one(CONTACTS, [eq("id", contact_id)])

    async def get_band_name(self, band_id: str | None) -> str | None:
        if not band_id:
            return None
        row = await self._store.select_one(BANDS, [eq("id", band_id)], columns=["name"])
        return row.get("name") if row else None

    async def display_name(self, user_id: str | None) -> str | None:
        profile = await self.get_profile(user_id)
        if not profile:
            return None
        return profile.get("name") or profile.get("email")

    async def role_email(self, role: GigRole) -> str | None:
        """Account email first, then the linked contact's email."""
        profile = await self.get_profile(role.musician_id)
        if profile and profile.get("email"):
            return profile["email"]
        contact = await self.get_contact(role.contact_id)
        if contact and contact.get("email"):
            return contact["email"]
        return None

    async def role_person_name(self, role: GigRole) -> str | None:
        """Account name first, then the linked contact's name."""
        profile = await self.get_profile(role.musician_id)
        if profile and profile.get("name"):
            return profile["name"]
        contact = await self.get_contact(role.contact_id)
        if contact and contact.get("contact_name"):
            return contact["contact_name"]
        return None

    async def role_display_name(self, role: GigRole) -> str:
        return await self.role_person_name(role) or "A musician"


gig_repository = GigRepository(row_store)
