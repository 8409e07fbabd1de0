"""
Services Module

Stores and workflows behind a client session:
- Credential store: user documents, login bookkeeping, profile updates
- Relationship store and workflow: invitations and friend lists, applied atomically
- Chat store and poller: per-pair message log and live delivery
- Session: the per-connection state machine
"""

# Stores
from .credential_store import CredentialStore
from .relationship_store import RelationshipStore, UpdateStep
from .chat_store import ChatStore, canonical_pair
from .stores import Stores

# Workflows
from .relationship import RelationshipWorkflow
from .chat_poller import ChatPoller, CHAT_PROMPT

# Per-connection state machine
from .session import Session, SessionState
