# gibber/services/session.py
"""
Client Session

One Session drives one client connection through its lifecycle:

  CONNECTING -> AUTHENTICATING -> DASHBOARD -> {CHATTING,
  MANAGING_INVITATIONS, EDITING_PROFILE} -> ... -> CLOSED

Input rules:
  - every prompt rejects empty input ("empty msg") unless it allows blank
  - email and password prompts during authentication allow a bounded number
    of attempts (settings.max_attempts); menus re-prompt without limit
  - a transport failure ends the session immediately
  - store failures inside a menu option produce a failure line and return
    the user to the menu
"""
import logging
from enum import Enum

from gibber.config import Settings, settings as default_settings
from gibber.core.channel import LineChannel
from gibber.core.errors import (
    AuthenticationFailed,
    DuplicateEmail,
    GibberError,
    InputError,
    InvalidInvitation,
    NoDocumentUpdate,
    NotFound,
    StoreError,
    TransportError,
)
from gibber.core.validation import valid_email, valid_password
from gibber.models.user import User
from gibber.models.user_invites import InviteKind
from gibber.schemas.chat import ChatLine
from gibber.schemas.profile import PersonalProfile, PublicProfile, format_timestamp
from gibber.services.chat_poller import CHAT_PROMPT, ChatPoller
from gibber.services.stores import Stores

logger = logging.getLogger(__name__)

WELCOME_MSG = "Welcome to Gibber. Hope you have a lot to say today."
EMAIL_PROMPT = "\nPlease enter your email to continue.\nEmail: "
REENTER_EMAIL_PROMPT = "Please re-enter your email.\nEmail: "
PASSWORD_PROMPT = "\nYou are already a registered user. Please enter password to continue.\nPassword: "
REENTER_PASSWORD_PROMPT = "\nPlease re-enter your password.\nPassword: "
NEW_USER_MSG = "You are an unregistered user. Please register yourself by providing details.\n"
FIRST_NAME_PROMPT = "First Name: "
LAST_NAME_PROMPT = "Last Name: "
SET_PASSWORD_PROMPT = "New Password: "
CONFIRM_PASSWORD_PROMPT = "Confirm Password: "
SUCCESSFUL_LOGIN = "\nLogged In Successfully. Last login: {}\n"
FAILED_LOGIN = "Log In Failed"
SUCCESSFUL_REGISTRATION = "\nRegistered Successfully"
FAILED_REGISTRATION = "\nRegistration Failed"
EXITING_MSG = "exiting..."

EMPTY_INPUT = "empty msg"
INVALID_INPUT = "invalid msg"
INVALID_EMAIL = "invalid email"
INCORRECT_PASSWORD = "incorrect password"
SERVER_ERROR = "server processing error"
PASSWORDS_NOT_MATCHED = "passwords not matched"
SHORT_PASSWORD = "password should be at least {} characters long"
INTERNAL_ERROR = "Internal error. Try again"

DASHBOARD_HEADER = (
    "********************** Welcome to Gibber ************************"
    "\n\nPlease select one of the option from below."
)
USER_MENU = (
    "\n0 - Exit"
    "\n1 - Start/Resume Chat"
    "\n2 - See All Friends"
    "\n3 - Send invitation"
    "\n4 - See all invitations"
    "\n5 - Change password"
    "\n6 - Change Name"
    "\n7 - See your profile"
    "\n\nEnter a choice: "
)
INVITATION_MENU = (
    "\n0 - Go back to previous menu"
    "\n1 - Active Sent Invites"
    "\n2 - Active Received Invites"
    "\n3 - Inactive Sent Invites"
    "\n4 - Inactive Received Invites"
    "\n\nEnter a choice: "
)
SEND_INVITATION_INFO = "You can search other people uniquely by their email.\n"
EMAIL_SEARCH_PROMPT = '\nEmail("q" to quit): '
GO_BACK_PROMPT = "\nEnter 'b' to go back: "
EMPTY_CHAT_MSG = "Empty message can't be sent!!!"


def list_index(reply: str, count: int) -> int | None:
    """0-based index for a 1-based choice among count entries, None when out of range or not a number."""
    try:
        choice = int(reply)
    except ValueError:
        return None
    if not 1 <= choice <= count:
        return None
    return choice - 1


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    DASHBOARD = "dashboard"
    CHATTING = "chatting"
    MANAGING_INVITATIONS = "managing_invitations"
    EDITING_PROFILE = "editing_profile"
    CLOSED = "closed"


class Session:
    """
    State machine for one client connection.

    Attributes:
        user: The authenticated user (None until authentication succeeds)
        state: Current SessionState
        outcome: Why the session ended, when it ended abnormally
    """

    def __init__(self, channel: LineChannel, stores: Stores, config: Settings | None = None):
        self.channel = channel
        self.stores = stores
        self.workflow = stores.workflow
        self.settings = config or default_settings
        self.user: User | None = None
        self.state = SessionState.CONNECTING
        self.poller: ChatPoller | None = None
        self.outcome: str | None = None

    # -------- lifecycle --------
    async def run(self) -> str | None:
        """
        Drive the connection until the user exits or the session fails.

        Returns:
            None on a regular exit, otherwise the reason the session ended
        """
        try:
            await self.channel.send(WELCOME_MSG)
            self.state = SessionState.AUTHENTICATING
            await self.authenticate()
            await self.dashboard()
        except AuthenticationFailed as exc:
            self.outcome = str(exc)
            logger.info("client %s => authentication failed: %s", self.channel.peer, exc)
        except TransportError as exc:
            self.outcome = str(exc)
            logger.info("client %s => session aborted: %s", self.channel.peer, exc)
        except GibberError as exc:
            self.outcome = str(exc)
            logger.error("client %s => session failed: %s", self.channel.peer, exc)
            await self._notify(INTERNAL_ERROR)
        finally:
            await self.close()
        return self.outcome

    async def close(self):
        """Stop the poller and log the user out. Does not close the channel."""
        await self.stop_poller()
        if self.user is not None:
            try:
                await self.stores.credentials.set_logged_in(self.user.id, False)
                logger.info("user %s logged out", self.user.email)
            except GibberError as exc:
                logger.error("logout failed for user %s: %s", self.user.email, exc)
        self.state = SessionState.CLOSED

    async def stop_poller(self):
        if self.poller is not None:
            poller, self.poller = self.poller, None
            await poller.stop()

    async def _notify(self, text: str):
        # best effort; the connection may already be gone
        try:
            await self.channel.send(text)
        except TransportError as exc:
            logger.debug("client %s => notification not delivered: %s", self.channel.peer, exc)

    # -------- input helpers --------
    async def prompt(self, text: str, allow_blank: bool = False) -> str:
        """
        Send a prompt and read the reply (surrounding whitespace removed).

        Raises:
            InputError: the reply is empty and blank is not allowed
            TransportError: the connection failed
        """
        await self.channel.send(text, newline=False)
        reply = (await self.channel.read_line()).strip()
        if not reply and not allow_blank:
            await self.channel.send(EMPTY_INPUT)
            raise InputError("empty input")
        return reply

    async def read_choice(self, menu: str, highest: int) -> int | None:
        """Menu choice in 0..highest, or None after reporting invalid input."""
        try:
            reply = await self.prompt(menu)
        except InputError:
            return None
        try:
            choice = int(reply)
        except ValueError:
            choice = -1
        if not 0 <= choice <= highest:
            await self.channel.send(INVALID_INPUT)
            return None
        return choice

    async def pick(self, text: str, users: list[User]) -> User | None:
        """
        Let the user choose one entry of a listed (1-based) user list.

        Returns:
            The chosen user, or None when the user went back ("b")

        Raises:
            InputError: empty or invalid choice (already reported)
        """
        reply = await self.prompt(text)
        if reply.lower() == "b":
            return None
        index = list_index(reply, len(users))
        if index is None:
            await self.channel.send(f"Invalid choice: {reply}")
            raise InputError(f"invalid choice {reply!r}")
        return users[index]

    async def confirm(self, text: str = "\nConfirm(Y/n): ") -> bool:
        reply = await self.prompt(text, allow_blank=True)
        return reply.lower() in ("y", "")

    async def list_users(self, header: str, users: list[User]):
        lines = [header]
        lines += [f"{idx} - {PublicProfile.from_user(u).summary()}" for idx, u in enumerate(users, 1)]
        await self.channel.send("\n".join(lines))

    async def wait_for_back(self):
        while True:
            try:
                reply = await self.prompt(GO_BACK_PROMPT)
            except InputError:
                continue
            if reply.lower() == "b":
                return
            await self.channel.send(f"Invalid msg: {reply}")

    # -------- authentication --------
    async def authenticate(self):
        email = await self.read_email()
        try:
            user = await self.stores.credentials.get_user_by_email(email)
        except NotFound:
            self.user = await self.register(email)
        except StoreError as exc:
            await self.channel.send(f"{FAILED_LOGIN}: {SERVER_ERROR}")
            raise AuthenticationFailed(SERVER_ERROR) from exc
        else:
            self.user = await self.login(user)
        logger.info("client %s => authenticated as %s", self.channel.peer, self.user.email)

    async def read_email(self) -> str:
        for attempt in range(self.settings.max_attempts):
            try:
                email = (await self.prompt(EMAIL_PROMPT if attempt == 0 else REENTER_EMAIL_PROMPT)).lower()
            except InputError:
                continue
            if valid_email(email):
                return email
            logger.debug("client %s => invalid email %s", self.channel.peer, email)
            await self.channel.send(INVALID_EMAIL)
        await self.channel.send(EXITING_MSG)
        raise AuthenticationFailed("reading email failed")

    async def register(self, email: str) -> User:
        """
        Collect registration details and create the user.
        Any failure ends the session; nothing is retried.
        """
        await self.channel.send(NEW_USER_MSG)
        try:
            first_name = await self.prompt(FIRST_NAME_PROMPT)
            last_name = await self.prompt(LAST_NAME_PROMPT)
            password = await self.prompt(SET_PASSWORD_PROMPT)
            if not valid_password(password, self.settings.password_min_length):
                await self.channel.send(SHORT_PASSWORD.format(self.settings.password_min_length))
                raise InputError("short password")
            confirmation = await self.prompt(CONFIRM_PASSWORD_PROMPT)
            if confirmation != password:
                await self.channel.send(PASSWORDS_NOT_MATCHED)
                raise InputError(PASSWORDS_NOT_MATCHED)
            user = await self.workflow.register(first_name, last_name, email, password)
        except DuplicateEmail as exc:
            await self.channel.send(f"{FAILED_REGISTRATION}: user exists")
            raise AuthenticationFailed("user exists") from exc
        except (InputError, NoDocumentUpdate, StoreError) as exc:
            await self.channel.send(FAILED_REGISTRATION)
            raise AuthenticationFailed("registration failed") from exc
        await self.channel.send(SUCCESSFUL_REGISTRATION)
        return user

    async def login(self, user: User) -> User:
        for attempt in range(self.settings.max_attempts):
            try:
                password = await self.prompt(PASSWORD_PROMPT if attempt == 0 else REENTER_PASSWORD_PROMPT)
            except InputError:
                continue
            try:
                logged_in = await self.stores.credentials.login(user, password)
            except (StoreError, NoDocumentUpdate) as exc:
                logger.error("login of %s failed: %s", user.email, exc)
                await self.channel.send(f"{FAILED_LOGIN}: {SERVER_ERROR}")
                continue
            if logged_in is None:
                await self.channel.send(f"{FAILED_LOGIN}: {INCORRECT_PASSWORD}")
                continue
            await self.channel.send(SUCCESSFUL_LOGIN.format(format_timestamp(logged_in.last_login)))
            return logged_in
        await self.channel.send(EXITING_MSG)
        raise AuthenticationFailed("reading password failed")

    # -------- dashboard --------
    async def dashboard(self):
        options = {
            1: self.start_chat,
            2: self.show_friends,
            3: self.send_invitation,
            4: self.manage_invitations,
            5: self.change_password,
            6: self.change_name,
            7: self.show_profile,
        }
        await self.channel.send(DASHBOARD_HEADER)
        while True:
            self.state = SessionState.DASHBOARD
            choice = await self.read_choice(USER_MENU, len(options))
            if choice is None:
                continue
            if choice == 0:
                await self.channel.send(EXITING_MSG)
                logger.info("user %s exited", self.user.email)
                return
            await self.guarded(options[choice])

    async def guarded(self, option):
        """Run a menu option; store and input failures return to the menu."""
        try:
            await option()
        except InputError:
            pass  # already reported to the client
        except (StoreError, NoDocumentUpdate, NotFound) as exc:
            logger.error("user %s => %s failed: %s", self.user.email, option.__name__, exc)
            await self.channel.send(INTERNAL_ERROR)

    # 1
    async def start_chat(self):
        friends = await self.workflow.friends(self.user, online_only=True)
        if not friends:
            await self.channel.send("\nNone of your friends is online right now\n")
            return
        await self.list_users("\n****************** Online Friends List *****************\n", friends)
        reply = await self.prompt("Enter a friend's index to start chat: ")
        index = list_index(reply, len(friends))
        if index is None:
            await self.channel.send(INVALID_INPUT)
            return
        await self.chat(friends[index])

    async def chat(self, peer: User):
        """
        Chat with peer until the user enters "q".

        Shows the transcript, then runs the poller in the background while
        the foreground reads and stores the user's messages.
        """
        self.state = SessionState.CHATTING
        chats = self.stores.chats
        messages = await chats.get_messages(self.user.id, peer.id)
        transcript = [f"\n****************** Chat with {peer.full_name} *****************\n"]
        for message in messages:
            sender = "You" if message.sender_id == str(self.user.id) else peer.first_name
            transcript.append(ChatLine(sender=sender, text=message.text, timestamp=message.timestamp).render())
        await self.channel.send("\n".join(transcript))

        self.poller = ChatPoller(
            chats,
            self.channel,
            self.user.id,
            peer,
            last_seen_id=messages[-1].id if messages else None,
            interval=self.settings.poll_interval,
        )
        self.poller.start()
        try:
            while True:
                await self.channel.send(CHAT_PROMPT, newline=False)
                text = (await self.channel.read_line()).strip()
                if text.lower() == "q":
                    return
                if not text:
                    await self.channel.send(EMPTY_CHAT_MSG)
                    continue
                try:
                    await chats.append_message(self.user.id, peer.id, text)
                except (StoreError, NoDocumentUpdate) as exc:
                    logger.error("message from %s to %s not stored: %s", self.user.email, peer.email, exc)
                    await self.channel.send("Message not sent. Try again")
                    continue
                await self.channel.send(f"You: {text}\n")
        finally:
            await self.stop_poller()

    # 2
    async def show_friends(self):
        friends = await self.workflow.friends(self.user)
        if not friends:
            await self.channel.send("\nYou have no friends yet. Send an invitation to connect.\n")
            return
        await self.list_users("\n****************** Friends List *****************\n", friends)
        await self.wait_for_back()

    # 3
    async def send_invitation(self):
        await self.channel.send(SEND_INVITATION_INFO)
        while True:
            try:
                email = (await self.prompt(EMAIL_SEARCH_PROMPT)).lower()
            except InputError:
                continue
            if email == "q":
                return
            if not valid_email(email):
                await self.channel.send(INVALID_EMAIL)
                continue
            peer = await self.workflow.find_user(email)
            if peer is None:
                await self.channel.send(f"\nNo user found with given email {email}")
                continue
            break

        await self.channel.send(f"\nUser found => {PublicProfile.from_user(peer).summary()}")
        await self.channel.send(f"Send invite to {email}. ", newline=False)
        if not await self.confirm("Confirm? (Y/n): "):
            return
        try:
            await self.workflow.send_invitation(self.user, peer)
        except InvalidInvitation as exc:
            await self.channel.send(f"\nInvitation not sent: {exc}")
            return
        except (StoreError, NoDocumentUpdate) as exc:
            logger.error("invitation from %s to %s failed: %s", self.user.email, email, exc)
            await self.channel.send(f"\nSending invitation to {email} failed")
            return
        await self.channel.send(f"\nInvitation sent successfully to {peer.full_name} ({peer.email})")

    # 4
    async def manage_invitations(self):
        views = {
            1: self.active_sent_invitations,
            2: self.active_received_invitations,
            3: self.inactive_sent_invitations,
            4: self.inactive_received_invitations,
        }
        while True:
            self.state = SessionState.MANAGING_INVITATIONS
            choice = await self.read_choice(INVITATION_MENU, len(views))
            if choice is None:
                continue
            if choice == 0:
                return
            await self.guarded(views[choice])

    async def active_sent_invitations(self):
        peers = await self.workflow.invitation_peers(self.user, InviteKind.SENT)
        if not peers:
            await self.channel.send("\nNo active sent invitations\n")
            return
        await self.list_users("\n**** Active Sent Invitations ****\n", peers)
        peer = await self.pick('\nChoose one to cancel("b to go back"): ', peers)
        if peer is None or not await self.confirm():
            return
        try:
            await self.workflow.cancel_invitation(self.user, peer.id)
        except (StoreError, NoDocumentUpdate, NotFound) as exc:
            logger.error("cancelling invitation from %s to %s failed: %s", self.user.email, peer.email, exc)
            await self.channel.send(f"\nCancelling invitation to {peer.email} failed\n")
            return
        await self.channel.send(f"\nInvitation to {peer.email} successfully cancelled\n")

    async def active_received_invitations(self):
        peers = await self.workflow.invitation_peers(self.user, InviteKind.RECEIVED)
        if not peers:
            await self.channel.send("\nNo active received invitations\n")
            return
        await self.list_users("\n**** Active Received Invitations ****\n", peers)
        peer = await self.pick('\nChoose one to accept or reject("b to go back"): ', peers)
        if peer is None:
            return
        await self.channel.send(
            "\n===== Invitation Details =====\n"
            f"\nName: {peer.full_name}\nEmail: {peer.email}"
        )
        reply = (await self.prompt('\nAccept or reject? (a/r, "b" to go back): ')).lower()
        if reply == "a":
            try:
                await self.workflow.accept_invitation(self.user, peer.id)
            except (StoreError, NoDocumentUpdate, NotFound) as exc:
                logger.error("adding %s as friend to %s failed: %s", peer.email, self.user.email, exc)
                await self.channel.send(f"\nAdding {peer.email} as friend failed\n")
                return
            await self.channel.send(f"\nAdded {peer.full_name} as friend successfully\n")
        elif reply == "r":
            try:
                await self.workflow.reject_invitation(self.user, peer.id)
            except (StoreError, NoDocumentUpdate, NotFound) as exc:
                logger.error("rejecting invitation of %s to %s failed: %s", peer.email, self.user.email, exc)
                await self.channel.send(f"\nRejecting invitation from {peer.email} failed\n")
                return
            await self.channel.send(f"\nInvitation from {peer.email} rejected\n")
        elif reply != "b":
            await self.channel.send(f"Invalid choice: {reply}")

    async def inactive_sent_invitations(self):
        peers = await self.workflow.invitation_peers(self.user, InviteKind.CANCELLED)
        if not peers:
            await self.channel.send("\nNo inactive sent invitations\n")
            return
        await self.list_users("\n**** Inactive Sent Invitations ****\n", peers)
        await self.wait_for_back()

    async def inactive_received_invitations(self):
        peers = await self.workflow.invitation_peers(self.user, InviteKind.ACCEPTED, InviteKind.REJECTED)
        if not peers:
            await self.channel.send("\nNo inactive received invitations\n")
            return
        await self.list_users("\n**** Inactive Received Invitations ****\n", peers)
        await self.wait_for_back()

    # 5
    async def change_password(self):
        self.state = SessionState.EDITING_PROFILE
        credentials = self.stores.credentials
        for _ in range(self.settings.max_attempts):
            try:
                current = await self.prompt("\nEnter your current password: ")
            except InputError:
                continue
            if await credentials.verify(self.user, current):
                break
            await self.channel.send(INCORRECT_PASSWORD)
        else:
            await self.channel.send("Password update failed. Please try again.\n")
            return

        min_length = self.settings.password_min_length
        for _ in range(self.settings.max_attempts):
            try:
                new_password = await self.prompt("\nEnter your new password: ")
                if not valid_password(new_password, min_length):
                    await self.channel.send(SHORT_PASSWORD.format(min_length))
                    continue
                confirmation = await self.prompt("\nConfirm your new password: ")
            except InputError:
                continue
            if confirmation != new_password:
                await self.channel.send(PASSWORDS_NOT_MATCHED)
                continue
            break
        else:
            await self.channel.send("Password update failed. Please try again.\n")
            return

        try:
            await credentials.update_password(self.user, new_password)
        except (StoreError, NoDocumentUpdate) as exc:
            logger.error("password update failed for user %s: %s", self.user.email, exc)
            await self.channel.send("Password update failed. Please try again.\n")
            return
        await self.channel.send("Password successfully updated\n")

    # 6
    async def change_name(self):
        self.state = SessionState.EDITING_PROFILE
        first_name = await self.prompt("\nEnter your new first name(enter blank for skip): ", allow_blank=True)
        last_name = await self.prompt("\nEnter your new last name(enter blank for skip): ", allow_blank=True)
        try:
            updated = await self.stores.credentials.update_name(self.user, first_name, last_name)
        except (StoreError, NoDocumentUpdate) as exc:
            logger.error("name update failed for user %s: %s", self.user.email, exc)
            await self.channel.send("Name update failed. Please try again.\n")
            return
        if not updated:
            await self.channel.send("Nothing to update\n")
            return
        await self.channel.send("Name successfully updated\n")

    # 7
    async def show_profile(self):
        await self.channel.send(PersonalProfile.from_user(self.user).render())
