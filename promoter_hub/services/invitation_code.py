"""Invitation code generation."""

import secrets
import string
from typing import Awaitable, Callable

from promoter_hub.services.exceptions import TransientConflictError

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 12


def generate_invitation_code() -> str:
    """
    Generate a 12 character code from A-Z0-9.
    Example: K7X2M9QR4TZA
    """
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def generate_unique_invitation_code(
    exists: Callable[[str], Awaitable[bool]],
    max_attempts: int = 10,
) -> str:
    """
    Generate codes until `exists` reports one as unused.

    Raises TransientConflictError after `max_attempts` collisions.
    """
    for _ in range(max_attempts):
        code = generate_invitation_code()
        if not await exists(code):
            return code
    raise TransientConflictError(
        f"Could not allocate a unique invitation code after {max_attempts} attempts"
    )
