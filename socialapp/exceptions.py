"""
Error taxonomy for the social app.

Every error carries a user-facing message and the HTTP status it maps to.
A single handler in main.py turns them into ``{"error": message}`` bodies.
"""
from typing import Any, Dict, Optional


class SocialAppError(Exception):
    status_code = 500
    default_message = 'An error has occurred'

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        # logged only, never returned to the client
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SocialAppError):
    """Malformed input: bad identifiers, self-requests, rejected uploads."""
    status_code = 400
    default_message = 'Invalid request'


class NotFound(SocialAppError):
    status_code = 404
    default_message = 'No user found'


class Conflict(SocialAppError):
    """A relationship precondition does not hold.

    Kept at 400 so clients of the friend-request endpoints see the same
    status they always have.
    """
    status_code = 400
    default_message = 'Friend request already sent or user is already a friend'


class InternalError(SocialAppError):
    status_code = 500
    default_message = 'An error has occurred'


class RateLimitExceeded(SocialAppError):
    status_code = 429
    default_message = 'Rate limit exceeded. Please try again later.'
