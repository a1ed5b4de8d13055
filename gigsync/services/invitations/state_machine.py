# gigsync/services/invitations/state_machine.py
"""
Lifecycle of a single lineup assignment.

    pending -> invited -> {accepted, declined, tentative, needs_sub}
    declined / needs_sub -> invited            (manager re-invite)
    accepted / declined / tentative / needs_sub -> replaced (terminal)

Every transition checks for ``replaced`` first (regardless of actor), then
authorizes the actor, persists status + actor + timestamp, and only then
appends history and notifies the counterparty. The last two are best-effort:
they log and swallow their own failures.

Webhook-driven and user-driven writes are last-write-wins on
``invitation_status``.
"""

from collections import defaultdict
from datetime import UTC, datetime
from typing import Literal

from gigsync.errors import GigSyncError, InvalidTransition, NotAuthorized, RoleReplaced
from gigsync.infrastructure.audit.status_history import StatusHistoryRecorder, status_history
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.gig_domain import (
    ROLE_STATUSES,
    BulkAcceptResult,
    Gig,
    GigRole,
    MyInvitation,
    RoleStatus,
)
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.event_content import display_title
from gigsync.services.notifications import NotificationService, notification_service

logger = get_logger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"invited"}),
    "invited": frozenset({"accepted", "declined", "tentative", "needs_sub"}),
    "accepted": frozenset({"tentative", "declined", "needs_sub", "replaced"}),
    "tentative": frozenset({"accepted", "declined", "needs_sub", "replaced"}),
    "declined": frozenset({"invited", "replaced"}),
    "needs_sub": frozenset({"invited", "replaced"}),
    "replaced": frozenset(),
}

SELF_SERVICE_STATUSES = frozenset({"accepted", "declined", "tentative", "needs_sub"})
REINVITABLE_STATUSES = frozenset({"declined", "needs_sub"})

_MANAGER_TITLES = {
    "accepted": "{name} accepted",
    "declined": "{name} declined",
    "tentative": "{name} is tentative",
    "needs_sub": "{name} needs a sub",
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


class InvitationStateMachine:
    def __init__(
        self,
        gigs: GigRepository,
        history: StatusHistoryRecorder,
        notifier: NotificationService,
    ):
        self._gigs = gigs
        self._history = history
        self._notifier = notifier

    # Guards

    def _ensure_not_replaced(self, role: GigRole) -> None:
        if role.invitation_status == "replaced":
            raise RoleReplaced(role.id)

    def _ensure_allowed(self, role: GigRole, new_status: str) -> None:
        if not can_transition(role.invitation_status, new_status):
            raise InvalidTransition(
                f"Cannot change status from {role.invitation_status} to {new_status}"
            )

    async def _owned_gig(self, role: GigRole, manager_id: str) -> Gig:
        gig = await self._gigs.get_gig(role.gig_id)
        if gig.owner_id != manager_id:
            raise NotAuthorized("Only the gig owner can manage this role")
        return gig

    # Persistence

    async def _persist(
        self, role: GigRole, new_status: RoleStatus, actor_id: str | None, note: str | None
    ) -> GigRole:
        """Authoritative write, then best-effort history."""
        now = datetime.now(UTC)
        await self._gigs.update_role(
            role.id,
            {
                "invitation_status": new_status,
                "status_changed_at": now,
                "status_changed_by": actor_id,
            },
        )
        await self._history.record(role.id, role.invitation_status, new_status, actor_id, note)
        return role.model_copy(
            update={
                "invitation_status": new_status,
                "status_changed_at": now,
                "status_changed_by": actor_id,
            }
        )

    async def _notify_manager(self, gig: Gig, role: GigRole, actor_name: str) -> None:
        template = _MANAGER_TITLES.get(role.invitation_status)
        if template is None:
            return
        await self._notifier.notify(
            gig.owner_id,
            f"role_{role.invitation_status}",
            template.format(name=actor_name),
            f"{role.role_name or 'Role'} for {display_title(gig)}",
            link=f"/gigs/{gig.id}",
            gig_id=gig.id,
            gig_role_id=role.id,
        )

    # Musician-driven

    async def update_my_status(
        self, role_id: str, user_id: str, new_status: RoleStatus, note: str | None = None
    ) -> GigRole:
        """Self-service accept / decline / tentative / needs-sub."""
        role = await self._gigs.get_role(role_id)
        self._ensure_not_replaced(role)
        if role.musician_id != user_id:
            raise NotAuthorized("You can only update your own invitations")
        if new_status not in SELF_SERVICE_STATUSES:
            raise InvalidTransition(f"{new_status} is not a self-service status")
        if role.invitation_status == new_status:
            return role
        self._ensure_allowed(role, new_status)

        updated = await self._persist(role, new_status, user_id, note)

        gig = await self._gigs.get_gig(role.gig_id)
        name = await self._gigs.role_display_name(role)
        await self._notify_manager(gig, updated, name)
        return updated

    async def apply_transition(
        self,
        role: GigRole,
        new_status: RoleStatus,
        actor_id: str | None,
        note: str | None = None,
        *,
        notify_manager: bool = True,
    ) -> GigRole:
        """
        Shared path for actors already authenticated elsewhere (magic-link
        token, provider webhook). Still enforces ``replaced`` and the table.
        """
        self._ensure_not_replaced(role)
        if role.invitation_status == new_status:
            return role
        self._ensure_allowed(role, new_status)

        updated = await self._persist(role, new_status, actor_id, note)
        if notify_manager:
            gig = await self._gigs.get_gig(role.gig_id)
            name = await self._gigs.role_display_name(updated)
            await self._notify_manager(gig, updated, name)
        return updated

    async def apply_remote_response(self, role: GigRole, new_status: RoleStatus) -> bool:
        """
        Apply an attendee response read from the provider.

        Returns True when the status changed. Responses the table does not
        allow (e.g. after a manager re-assignment) are skipped, not raised.
        """
        if role.invitation_status == new_status:
            return False
        try:
            await self.apply_transition(
                role, new_status, role.musician_id, "Synced from Google Calendar"
            )
            return True
        except (RoleReplaced, InvalidTransition) as e:
            logger.info(
                "Remote response not applied",
                role_id=role.id,
                current_status=role.invitation_status,
                remote_status=new_status,
                reason=e.error_code,
            )
            return False

    async def bulk_accept(self, role_ids: list[str], user_id: str) -> BulkAcceptResult:
        """
        Accept many of the caller's roles at once.

        Manager notifications are merged per (manager, gig) so a manager gets
        one message for several roles on the same gig.
        """
        accepted: list[str] = []
        failed: dict[str, str] = {}
        grouped: dict[tuple[str, str], list[GigRole]] = defaultdict(list)

        for role in await self._gigs.list_roles_by_ids(role_ids):
            try:
                self._ensure_not_replaced(role)
                if role.musician_id != user_id:
                    raise NotAuthorized("You can only update your own invitations")
                if role.invitation_status != "accepted":
                    self._ensure_allowed(role, "accepted")
                    role = await self._persist(role, "accepted", user_id, "Bulk accepted")
                accepted.append(role.id)
                gig = await self._gigs.get_gig(role.gig_id)
                grouped[(gig.owner_id, gig.id)].append(role)
            except GigSyncError as e:
                failed[role.id] = e.message

        for role_id in role_ids:
            if role_id not in accepted and role_id not in failed:
                failed[role_id] = "Role not found"

        if grouped:
            name = await self._gigs.display_name(user_id) or "A musician"
            for (owner_id, gig_id), roles in grouped.items():
                gig = await self._gigs.get_gig(gig_id)
                if len(roles) == 1:
                    title = f"{name} accepted"
                    message = f"{roles[0].role_name or 'Role'} for {display_title(gig)}"
                else:
                    role_names = ", ".join(r.role_name or "Role" for r in roles)
                    title = f"{name} accepted {len(roles)} roles"
                    message = f"Accepted their roles ({role_names}) in {display_title(gig)}"
                await self._notifier.notify(
                    owner_id,
                    "role_accepted",
                    title,
                    message,
                    link=f"/gigs/{gig_id}",
                    gig_id=gig_id,
                )

        logger.info(
            "Bulk accept completed", user_id=user_id, accepted=len(accepted), failed=len(failed)
        )
        return BulkAcceptResult(accepted=accepted, failed=failed)

    async def list_my_invitations(
        self, user_id: str, status: Literal["invited", "declined"] = "invited"
    ) -> list[MyInvitation]:
        """The caller's open (``invited``) or declined roles on upcoming gigs, soonest first."""
        roles = await self._gigs.roles_for_musician(user_id, status)
        gigs = {
            gig.id: gig
            for gig in await self._gigs.gigs_by_ids(
                sorted({role.gig_id for role in roles}), on_or_after=datetime.now(UTC).date()
            )
        }
        invitations = [
            MyInvitation(role=role, gig=gigs[role.gig_id]) for role in roles if role.gig_id in gigs
        ]
        invitations.sort(key=lambda item: item.gig.date)
        return invitations

    # Manager-driven

    async def reinvite(self, role_id: str, manager_id: str) -> GigRole:
        """Move a declined / needs-sub role back to invited."""
        role = await self._gigs.get_role(role_id)
        self._ensure_not_replaced(role)
        gig = await self._owned_gig(role, manager_id)
        if role.invitation_status not in REINVITABLE_STATUSES:
            raise InvalidTransition(
                f"Only declined or needs-sub roles can be re-invited (is {role.invitation_status})"
            )

        updated = await self._persist(role, "invited", manager_id, "Manager re-invited")
        await self._notifier.notify(
            role.musician_id,
            "reinvitation",
            f"Re-invitation: {display_title(gig)}",
            f"You've been invited again as {role.role_name or 'a musician'}",
            link=f"/gigs/{gig.id}",
            gig_id=gig.id,
            gig_role_id=role.id,
        )
        return updated

    async def override_status(
        self, role_id: str, manager_id: str, new_status: RoleStatus, note: str | None = None
    ) -> GigRole:
        """Manager sets any status directly; a replaced role stays replaced."""
        role = await self._gigs.get_role(role_id)
        self._ensure_not_replaced(role)
        gig = await self._owned_gig(role, manager_id)
        if new_status not in ROLE_STATUSES:
            raise InvalidTransition(f"Unknown status {new_status}")
        if role.invitation_status == new_status:
            return role

        updated = await self._persist(role, new_status, manager_id, note or "Manager override")
        await self._notifier.notify(
            role.musician_id,
            "status_override",
            f"Status updated: {display_title(gig)}",
            f"Your status for {role.role_name or 'your role'} is now {new_status}",
            link=f"/gigs/{gig.id}",
            gig_id=gig.id,
            gig_role_id=role.id,
        )
        return updated

    async def replace(self, role_id: str, manager_id: str, note: str | None = None) -> GigRole:
        """Manager reassigns the slot; the assignment becomes terminal."""
        role = await self._gigs.get_role(role_id)
        self._ensure_not_replaced(role)
        gig = await self._owned_gig(role, manager_id)
        self._ensure_allowed(role, "replaced")

        updated = await self._persist(role, "replaced", manager_id, note or "Manager replaced")
        await self._notifier.notify(
            role.musician_id,
            "role_replaced",
            f"Lineup change: {display_title(gig)}",
            f"You are no longer booked as {role.role_name or 'a musician'}",
            gig_id=gig.id,
            gig_role_id=role.id,
        )
        return updated

    async def invite_all(self, gig_id: str, manager_id: str) -> int:
        """Move every assigned pending role to invited and notify account holders."""
        gig = await self._gigs.get_gig(gig_id)
        if gig.owner_id != manager_id:
            raise NotAuthorized("Only the gig owner can invite the lineup")

        invited = 0
        for role in await self._gigs.list_roles(gig_id):
            if role.invitation_status != "pending":
                continue
            if not role.musician_id and not role.contact_id:
                continue
            await self._persist(role, "invited", manager_id, "Invited with lineup")
            invited += 1
            await self._notifier.notify(
                role.musician_id,
                "invitation",
                f"Invitation: {display_title(gig)}",
                f"You've been invited as {role.role_name or 'a musician'}",
                link=f"/gigs/{gig.id}",
                gig_id=gig.id,
                gig_role_id=role.id,
            )

        logger.info("Lineup invited", gig_id=gig_id, invited=invited)
        return invited


invitation_state_machine = InvitationStateMachine(
    gig_repository, status_history, notification_service
)
