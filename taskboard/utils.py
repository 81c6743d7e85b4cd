import re
import uuid
from typing import Optional


def new_uuid() -> str:
    return str(uuid.uuid4())


def fallback_email_for_sub(sub: str) -> str:
    """Placeholder address for identities whose token carries no email claim."""
    sanitized = re.sub(r"[^a-z0-9._-]", "_", sub.lower())[:48]
    return f"{sanitized or 'user'}@placeholder.local"


def position_str(value: Optional[int]) -> Optional[str]:
    # Positions are 64-bit; JSON numbers lose precision past 2**53 in most clients.
    return str(value) if value is not None else None


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

