# gibber/core/errors.py
"""
Error taxonomy for the chat service.

- InputError: malformed, empty or out-of-range user input. Recoverable,
  handled where it happens (re-prompt or bounded retry).
- TransportError: read/write failure on the client connection. Session-fatal.
- NotFound: an expected document is absent. Often a valid branch
  (e.g. an unregistered email).
- NoDocumentUpdate: a write expected to change exactly one document changed
  none. Rolls back the enclosing transaction.
- StoreError: the backing store failed unexpectedly. Logged, surfaced as a
  generic failure, never retried.
"""
import logging
from contextlib import contextmanager

from tortoise.exceptions import BaseORMException

logger = logging.getLogger(__name__)


class GibberError(Exception):
    """Base class for all service errors."""


class InputError(GibberError):
    """User input was empty, malformed or out of range."""


class InvalidInvitation(InputError):
    """An invitation that makes no sense (self, duplicate, already friends)."""


class TransportError(GibberError):
    """Reading from or writing to the client connection failed."""


class NotFound(GibberError):
    """The requested document does not exist."""


class NoDocumentUpdate(GibberError):
    """A write that should have changed one document changed none."""


class StoreError(GibberError):
    """The backing store is unavailable or returned something unexpected."""


class DuplicateEmail(StoreError):
    """A user with this email already exists."""


class AuthenticationFailed(GibberError):
    """Authentication could not complete (retries exhausted or registration rejected)."""


@contextmanager
def store_errors(action: str):
    """
    Translate ORM exceptions raised inside the block into StoreError.

    Service errors raised inside the block (NotFound, NoDocumentUpdate, ...)
    pass through untouched.
    """
    try:
        yield
    except BaseORMException as exc:
        logger.error("store failure while %s: %s", action, exc)
        raise StoreError(f"{action} failed: {exc}") from exc
