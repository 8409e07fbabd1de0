"""
Integration tests for the relationship workflow.
Covers registration, invitations, friendship and transactional rollback.
"""
import pytest
from unittest.mock import patch

from gibber.core.errors import DuplicateEmail, InvalidInvitation, NoDocumentUpdate, StoreError
from gibber.models.friends import Friends
from gibber.models.user import User
from gibber.models.user_invites import InviteKind, UserInvites
from gibber.services.relationship_store import PUSH, UpdateStep


pytestmark = pytest.mark.asyncio


async def invites(stores, user) -> dict:
    record = await stores.relationships.get_record(user.id)
    return {kind: record.ids(kind) for kind in InviteKind}


def flaky(original, fail_on: int):
    """Wrap apply_step so that call number fail_on raises StoreError."""
    calls = []

    async def _apply_step(step, conn):
        calls.append(step)
        if len(calls) == fail_on:
            raise StoreError(f"forced failure on {step}")
        await original(step, conn)

    return _apply_step


class TestRegister:
    """Tests for creating a user together with its relationship record."""

    async def test_register_creates_record_and_stamps_reference(self, stores):
        user = await stores.workflow.register("Alice", "Smith", "alice@example.com", "secret1")

        record = await UserInvites.get(user_id=user.id)
        stored = await User.get(id=user.id)
        assert stored.invites_id == record.id
        assert all(ids == [] for ids in (await invites(stores, user)).values())

    async def test_duplicate_registration_fails(self, stores):
        await stores.workflow.register("Alice", "Smith", "a@x.com", "secret1")
        with pytest.raises(DuplicateEmail):
            await stores.workflow.register("Other", "Alice", "a@x.com", "secret2")

        assert await User.filter(email="a@x.com").count() == 1
        assert await UserInvites.all().count() == 1

    async def test_failed_record_creation_leaves_no_user(self, stores):
        with patch.object(
            stores.credentials, "attach_relationship", side_effect=NoDocumentUpdate("not attached")
        ):
            with pytest.raises(NoDocumentUpdate):
                await stores.workflow.register("Alice", "Smith", "alice@example.com", "secret1")

        assert await User.all().count() == 0
        assert await UserInvites.all().count() == 0


class TestSendInvitation:
    """Tests for sending invitations."""

    async def test_send_invitation_updates_both_records(self, stores, create_user):
        a, b = await create_user(), await create_user()

        await stores.workflow.send_invitation(a, b)

        assert (await invites(stores, a))[InviteKind.SENT] == [str(b.id)]
        assert (await invites(stores, b))[InviteKind.RECEIVED] == [str(a.id)]

    async def test_self_invitation_rejected(self, stores, create_user):
        a = await create_user()
        with pytest.raises(InvalidInvitation):
            await stores.workflow.send_invitation(a, a)

    async def test_duplicate_invitation_rejected(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)

        with pytest.raises(InvalidInvitation):
            await stores.workflow.send_invitation(a, b)
        with pytest.raises(InvalidInvitation):
            await stores.workflow.send_invitation(b, a)
        assert (await invites(stores, a))[InviteKind.SENT] == [str(b.id)]

    async def test_invitation_to_friend_rejected(self, stores, create_user, befriend):
        a, b = await create_user(), await create_user()
        await befriend(a, b)
        with pytest.raises(InvalidInvitation):
            await stores.workflow.send_invitation(b, a)

    async def test_forced_failure_on_second_write_leaves_nothing(self, stores, create_user):
        a, b = await create_user(), await create_user()
        relationships = stores.relationships

        with patch.object(relationships, "apply_step", new=flaky(relationships.apply_step, fail_on=2)):
            with pytest.raises(StoreError):
                await stores.workflow.send_invitation(a, b)

        assert (await invites(stores, a))[InviteKind.SENT] == []
        assert (await invites(stores, b))[InviteKind.RECEIVED] == []


class TestAcceptInvitation:
    """Tests for accepting invitations (add friend)."""

    async def test_accept_befriends_both_sides(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)

        peer = await stores.workflow.add_friend(b, a.id)

        assert peer.id == a.id
        assert str(b.id) in await stores.relationships.get_friends(a.id)
        assert str(a.id) in await stores.relationships.get_friends(b.id)
        assert str(a.id) not in await stores.relationships.get_received_invitations(b.id)
        assert str(b.id) not in await stores.relationships.get_sent_invitations(a.id)
        assert await stores.relationships.get_accepted_invitations(b.id) == [str(a.id)]

    async def test_accept_without_invitation_changes_nothing(self, stores, create_user):
        a, b = await create_user(), await create_user()

        with pytest.raises(NoDocumentUpdate):
            await stores.workflow.accept_invitation(b, a.id)

        assert await Friends.all().count() == 0
        assert await stores.relationships.get_accepted_invitations(b.id) == []

    async def test_forced_failure_rolls_back_accept(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)
        relationships = stores.relationships

        with patch.object(relationships, "apply_step", new=flaky(relationships.apply_step, fail_on=4)):
            with pytest.raises(StoreError):
                await stores.workflow.accept_invitation(b, a.id)

        assert await relationships.get_received_invitations(b.id) == [str(a.id)]
        assert await relationships.get_sent_invitations(a.id) == [str(b.id)]
        assert await relationships.get_friends(a.id) == []
        assert await relationships.get_friends(b.id) == []

    async def test_friends_lists_grow_in_order(self, stores, create_user, befriend):
        a, b, c = await create_user(), await create_user(), await create_user()
        await befriend(b, a)
        await befriend(c, a)

        friends = await stores.workflow.friends(a)

        assert [u.id for u in friends] == [b.id, c.id]


class TestRejectAndCancel:
    """Tests for rejecting and cancelling invitations."""

    async def test_reject_moves_invitation_to_rejected(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)

        await stores.workflow.reject_invitation(b, a.id)

        b_invites, a_invites = await invites(stores, b), await invites(stores, a)
        assert b_invites[InviteKind.RECEIVED] == []
        assert b_invites[InviteKind.REJECTED] == [str(a.id)]
        assert a_invites[InviteKind.SENT] == []
        assert await stores.relationships.get_friends(a.id) == []

    async def test_cancel_moves_invitation_to_cancelled(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)

        await stores.workflow.cancel_invitation(a, b.id)

        assert await stores.relationships.get_cancelled_invitations(a.id) == [str(b.id)]
        assert await stores.relationships.get_sent_invitations(a.id) == []
        assert await stores.relationships.get_received_invitations(b.id) == []

    async def test_cancel_twice_fails(self, stores, create_user):
        a, b = await create_user(), await create_user()
        await stores.workflow.send_invitation(a, b)
        await stores.workflow.cancel_invitation(a, b.id)

        with pytest.raises(NoDocumentUpdate):
            await stores.workflow.cancel_invitation(a, b.id)
        assert await stores.relationships.get_cancelled_invitations(a.id) == [str(b.id)]

    async def test_invitation_peers_by_kind(self, stores, create_user):
        a, b, c = await create_user(), await create_user(), await create_user()
        await stores.workflow.send_invitation(b, a)
        await stores.workflow.send_invitation(c, a)
        await stores.workflow.accept_invitation(a, b.id)
        await stores.workflow.reject_invitation(a, c.id)

        peers = await stores.workflow.invitation_peers(a, InviteKind.ACCEPTED, InviteKind.REJECTED)

        assert [u.id for u in peers] == [b.id, c.id]


class TestApply:
    """Tests for the atomic update primitive."""

    async def test_unknown_operator_rejected_and_nothing_committed(self, stores, create_user):
        a, b = await create_user(), await create_user()
        steps = [
            UpdateStep(model=UserInvites, filter={"user_id": a.id}, op=PUSH, field="sent", value=str(b.id)),
            UpdateStep(model=UserInvites, filter={"user_id": a.id}, op="set", field="sent", value=[]),
        ]

        with pytest.raises(ValueError, match="unknown update operator 'set'"):
            await stores.relationships.apply(steps)

        assert await stores.relationships.get_sent_invitations(a.id) == []
