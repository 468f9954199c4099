from .schemas import Actor, Capability, Role, GUEST
from .dependencies import (
    create_access_token, get_optional_actor, get_current_actor, require_capability
)

__all__ = [
    "Actor",
    "Capability",
    "Role",
    "GUEST",
    "create_access_token",
    "get_optional_actor",
    "get_current_actor",
    "require_capability",
]
