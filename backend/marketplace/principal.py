# Overview: Resolved caller identity handed to the core by the identity layer.

from __future__ import annotations

from dataclasses import dataclass

ROLE_BRAND = "brand"
ROLE_CREATOR = "creator"
ROLE_ADMIN = "admin"
VALID_ROLES = {ROLE_BRAND, ROLE_CREATOR, ROLE_ADMIN}


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller.

    The identity provider resolves the role once; the core trusts it and
    never re-derives it from profile tables. profile_id is the brand or
    creator profile the user operates (None for administrators).
    """
    user_id: int
    role: str
    profile_id: int | None = None

    @property
    def is_brand(self) -> bool:
        return self.role == ROLE_BRAND

    @property
    def is_creator(self) -> bool:
        return self.role == ROLE_CREATOR

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
