# gibber/services/relationship_store.py
"""
Relationship Store

Typed access to relationship records (UserInvites) and friend lists, plus
the atomic multi-document update primitive used by the relationship
workflow.

An update is described as a list of UpdateStep values, each naming a
collection (model), a filter selecting exactly one document, and a list
mutation (push / pull). apply() runs every step in one transaction:
either all of them land or none do.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from tortoise.transactions import in_transaction

from gibber.core.errors import NoDocumentUpdate, NotFound, store_errors
from gibber.models.friends import Friends
from gibber.models.user_invites import InviteKind, UserInvites

logger = logging.getLogger(__name__)

# list mutation operators
PUSH = "push"
PULL = "pull"


@dataclass
class UpdateStep:
    """
    One single-document mutation inside a transaction.

    Attributes:
        model: Tortoise model acting as the collection
        filter: Lookup selecting the target document (e.g. {"user_id": ...})
        op: PUSH appends value to a list field, PULL removes it
        field: Name of the field to mutate
        value: Value to push/pull
        upsert: Create the document (filter + field) when it does not exist
    """
    model: Any
    filter: dict
    op: str
    field: str
    value: Any
    upsert: bool = False
    description: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.description or f"{self.op} {self.field}={self.value} on {self.model.__name__}{self.filter}"


class RelationshipStore:
    """Invitation lists, friend lists and the atomic update primitive."""

    def transaction(self):
        """Start a store transaction (async context manager yielding the connection)."""
        return in_transaction()

    async def create_record(self, user_id, using_db=None) -> UserInvites:
        """Create the empty relationship record for a new user."""
        with store_errors(f"creating invites data for user {user_id}"):
            record = await UserInvites.create(user_id=user_id, using_db=using_db)
        logger.info("invites data %s created for user %s", record.id, user_id)
        return record

    async def get_record(self, user_id, using_db=None) -> UserInvites:
        with store_errors(f"fetching invites data for user {user_id}"):
            record = await UserInvites.filter(user_id=user_id).using_db(using_db).first()
        if record is None:
            logger.info("invite data not found for user %s", user_id)
            raise NotFound(f"invite data not found for user {user_id}")
        return record

    async def get_invitations(self, user_id, kind: InviteKind, using_db=None) -> list[str]:
        """Return the peer ids in the user's set named by kind."""
        record = await self.get_record(user_id, using_db=using_db)
        return record.ids(kind)

    async def get_sent_invitations(self, user_id) -> list[str]:
        return await self.get_invitations(user_id, InviteKind.SENT)

    async def get_received_invitations(self, user_id) -> list[str]:
        return await self.get_invitations(user_id, InviteKind.RECEIVED)

    async def get_accepted_invitations(self, user_id) -> list[str]:
        return await self.get_invitations(user_id, InviteKind.ACCEPTED)

    async def get_rejected_invitations(self, user_id) -> list[str]:
        return await self.get_invitations(user_id, InviteKind.REJECTED)

    async def get_cancelled_invitations(self, user_id) -> list[str]:
        return await self.get_invitations(user_id, InviteKind.CANCELLED)

    async def get_friends(self, user_id, using_db=None) -> list[str]:
        """Friend ids of the user; empty when no friends record exists yet."""
        with store_errors(f"fetching friends for user {user_id}"):
            record = await Friends.filter(user_id=user_id).using_db(using_db).first()
        if record is None:
            logger.debug("friends data not found for user %s", user_id)
            return []
        return list(record.friend_ids or [])

    # -------- atomic multi-document updates --------
    async def apply(self, steps: list[UpdateStep]):
        """
        Apply all steps atomically.

        Raises:
            NoDocumentUpdate: a step changed no document (nothing is committed)
            StoreError: the store failed (nothing is committed)
        """
        with store_errors("applying relationship update"):
            async with self.transaction() as conn:
                for step in steps:
                    await self.apply_step(step, conn)

    async def apply_step(self, step: UpdateStep, conn):
        """
        Apply one step on an open transaction connection.

        Raises NoDocumentUpdate when the step would leave its document
        unchanged; the caller's transaction then rolls back.
        """
        with store_errors(f"applying step {step}"):
            doc = await step.model.filter(**step.filter).using_db(conn).select_for_update().first()
            if doc is None:
                if not step.upsert:
                    logger.info("no document matched for step %s", step)
                    raise NoDocumentUpdate(f"no document matched for step {step}")
                if step.op == PULL:
                    raise NoDocumentUpdate(f"nothing to pull for step {step}")
                await step.model.create(using_db=conn, **step.filter, **{step.field: [step.value]})
                logger.debug("document created by step %s", step)
                return

            current = getattr(doc, step.field)
            if step.op == PUSH:
                updated = list(current or []) + [step.value]
            elif step.op == PULL:
                if step.value not in (current or []):
                    logger.info("value to pull not present for step %s", step)
                    raise NoDocumentUpdate(f"no document updated for step {step}")
                updated = [v for v in current if v != step.value]
            else:
                raise ValueError(f"unknown update operator {step.op!r}")

            setattr(doc, step.field, updated)
            await doc.save(using_db=conn, update_fields=[step.field])
            logger.debug("step applied: %s", step)
