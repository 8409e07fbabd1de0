# gibber/services/relationship.py
"""
Relationship Workflow

Multi-document operations on users, relationship records and friend lists.
Each operation runs in one store transaction: it either fully applies or
fully rolls back. A half-applied invitation (in the sender's "sent" but not
in the receiver's "received") can never be observed.

Operations:
- register: user document + empty relationship record + reference stamp
- send_invitation: sender.sent += receiver, receiver.received += sender
- accept_invitation (add_friend): drop the pending pair, befriend both ways
- reject_invitation: receiver.received -> receiver.rejected, drop sender.sent
- cancel_invitation: sender.sent -> sender.cancelled, drop receiver.received
"""
import logging

from gibber.core.errors import InvalidInvitation, NotFound, store_errors
from gibber.models.friends import Friends
from gibber.models.user import User
from gibber.models.user_invites import InviteKind, UserInvites
from gibber.services.credential_store import CredentialStore
from gibber.services.relationship_store import PULL, PUSH, RelationshipStore, UpdateStep

logger = logging.getLogger(__name__)


def _invites_step(user_id, op: str, kind: InviteKind, peer_id: str) -> UpdateStep:
    return UpdateStep(
        model=UserInvites,
        filter={"user_id": user_id},
        op=op,
        field=kind.value,
        value=str(peer_id),
        description=f"{op} {peer_id} {'onto' if op == PUSH else 'from'} {kind.value} of {user_id}",
    )


def _friend_step(user_id, friend_id) -> UpdateStep:
    # upsert: the friends record is created on the first friendship
    return UpdateStep(
        model=Friends,
        filter={"user_id": user_id},
        op=PUSH,
        field="friend_ids",
        value=str(friend_id),
        upsert=True,
        description=f"add {friend_id} as friend of {user_id}",
    )


class RelationshipWorkflow:
    """Invite -> accept -> friend, as all-or-nothing store transactions."""

    def __init__(self, credentials: CredentialStore, relationships: RelationshipStore):
        self.credentials = credentials
        self.relationships = relationships

    async def register(self, first_name: str, last_name: str, email: str, password: str) -> User:
        """
        Create a user together with its relationship record.

        The user insert, the record insert and the reference stamp share one
        transaction, so a failure never leaves an orphan record or a user
        without one.

        Raises:
            DuplicateEmail: the email is already registered
            NoDocumentUpdate / StoreError: creation failed, nothing persisted
        """
        with store_errors(f"registering user {email}"):
            async with self.relationships.transaction() as conn:
                user = await self.credentials.insert_user(
                    first_name, last_name, email, password, using_db=conn
                )
                record = await self.relationships.create_record(user.id, using_db=conn)
                await self.credentials.attach_relationship(user.id, record.id, using_db=conn)
                user.invites_id = record.id
        logger.info("user %s successfully registered", user.email)
        return user

    async def send_invitation(self, sender: User, receiver: User):
        """
        Record an invitation from sender to receiver.

        Raises:
            InvalidInvitation: self invitation, already pending either way,
                or the two are already friends
            NoDocumentUpdate / StoreError: nothing persisted
        """
        sender_id, receiver_id = str(sender.id), str(receiver.id)
        if sender_id == receiver_id:
            raise InvalidInvitation("you can't invite yourself")
        if receiver_id in await self.relationships.get_invitations(sender_id, InviteKind.SENT):
            raise InvalidInvitation(f"invitation to {receiver.email} is already pending")
        if receiver_id in await self.relationships.get_invitations(sender_id, InviteKind.RECEIVED):
            raise InvalidInvitation(f"{receiver.email} has already invited you")
        if receiver_id in await self.relationships.get_friends(sender_id):
            raise InvalidInvitation(f"{receiver.email} is already your friend")

        await self.relationships.apply([
            _invites_step(sender_id, PUSH, InviteKind.SENT, receiver_id),
            _invites_step(receiver_id, PUSH, InviteKind.RECEIVED, sender_id),
        ])
        logger.info("invitation sent from %s to %s", sender.email, receiver.email)

    async def accept_invitation(self, acceptor: User, peer_id: str) -> User:
        """
        Accept the invitation peer_id sent to acceptor and befriend both.

        Steps (one transaction):
          a) pull peer from acceptor.received
          b) pull acceptor from peer.sent
          c) push peer onto acceptor's friends (created if absent)
          d) push acceptor onto peer's friends (created if absent)
          e) push peer onto acceptor.accepted

        Returns:
            The peer's user document, read inside the transaction

        Raises:
            NotFound: the peer user does not exist
            NoDocumentUpdate: no such pending invitation (rolled back)
            StoreError: the store failed (rolled back)
        """
        acceptor_id, peer_id = str(acceptor.id), str(peer_id)
        with store_errors(f"accepting invitation from {peer_id}"):
            async with self.relationships.transaction() as conn:
                peer = await self.credentials.get_user_by_id(peer_id, using_db=conn)
                for step in (
                    _invites_step(acceptor_id, PULL, InviteKind.RECEIVED, peer_id),
                    _invites_step(peer_id, PULL, InviteKind.SENT, acceptor_id),
                    _friend_step(acceptor_id, peer_id),
                    _friend_step(peer_id, acceptor_id),
                    _invites_step(acceptor_id, PUSH, InviteKind.ACCEPTED, peer_id),
                ):
                    await self.relationships.apply_step(step, conn)
        logger.info("user %s added %s as friend", acceptor.email, peer.email)
        return peer

    add_friend = accept_invitation

    async def reject_invitation(self, user: User, peer_id: str) -> User:
        """Reject the invitation peer_id sent to user (one transaction)."""
        user_id, peer_id = str(user.id), str(peer_id)
        with store_errors(f"rejecting invitation from {peer_id}"):
            async with self.relationships.transaction() as conn:
                peer = await self.credentials.get_user_by_id(peer_id, using_db=conn)
                for step in (
                    _invites_step(user_id, PULL, InviteKind.RECEIVED, peer_id),
                    _invites_step(user_id, PUSH, InviteKind.REJECTED, peer_id),
                    _invites_step(peer_id, PULL, InviteKind.SENT, user_id),
                ):
                    await self.relationships.apply_step(step, conn)
        logger.info("user %s rejected invitation from %s", user.email, peer.email)
        return peer

    async def cancel_invitation(self, user: User, peer_id: str) -> User:
        """Withdraw the invitation user sent to peer_id (one transaction)."""
        user_id, peer_id = str(user.id), str(peer_id)
        with store_errors(f"cancelling invitation to {peer_id}"):
            async with self.relationships.transaction() as conn:
                peer = await self.credentials.get_user_by_id(peer_id, using_db=conn)
                for step in (
                    _invites_step(user_id, PULL, InviteKind.SENT, peer_id),
                    _invites_step(user_id, PUSH, InviteKind.CANCELLED, peer_id),
                    _invites_step(peer_id, PULL, InviteKind.RECEIVED, user_id),
                ):
                    await self.relationships.apply_step(step, conn)
        logger.info("user %s invitation to %s cancelled", user.email, peer.email)
        return peer

    async def friends(self, user: User, online_only: bool = False) -> list[User]:
        """Friend user documents, in friendship order."""
        ids = await self.relationships.get_friends(str(user.id))
        users = await self.credentials.get_users(ids)
        if online_only:
            users = [u for u in users if u.logged_in]
        return users

    async def invitation_peers(self, user: User, *kinds: InviteKind) -> list[User]:
        """User documents of the peers in the named invitation sets."""
        ids: list[str] = []
        for kind in kinds:
            ids.extend(await self.relationships.get_invitations(str(user.id), kind))
        return await self.credentials.get_users(ids)

    async def find_user(self, email: str) -> User | None:
        try:
            return await self.credentials.get_user_by_email(email)
        except NotFound:
            return None
