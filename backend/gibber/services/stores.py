# gibber/services/stores.py
from dataclasses import dataclass, field

from gibber.services.chat_store import ChatStore
from gibber.services.credential_store import CredentialStore
from gibber.services.relationship import RelationshipWorkflow
from gibber.services.relationship_store import RelationshipStore


@dataclass
class Stores:
    """The store handles a session works with, built once per server and shared."""
    credentials: CredentialStore = field(default_factory=CredentialStore)
    relationships: RelationshipStore = field(default_factory=RelationshipStore)
    chats: ChatStore = field(default_factory=ChatStore)

    @property
    def workflow(self) -> RelationshipWorkflow:
        return RelationshipWorkflow(self.credentials, self.relationships)

    @classmethod
    def create(cls) -> "Stores":
        return cls()
