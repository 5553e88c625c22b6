"""
User directory lookups used to gate order operations.
Registration and role management live outside the order core; this module only
reads what the core needs and offers a small registration helper for seeding.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from database import Database, User
from errors import Forbidden

MANAGER_ROLES = frozenset({"manager", "admin"})


@dataclass(frozen=True)
class DirectoryEntry:
    email: str
    role: str
    suspended: bool
    suspend_reason: str = ""


class UserDirectory:
    def __init__(self, db: Database):
        self._db = db

    async def lookup(self, email: str) -> Optional[DirectoryEntry]:
        """Return role and suspension status for an email, or None if unknown."""
        async with self._db.session() as session:
            user = await session.scalar(select(User).where(User.email == email))
        if user is None:
            return None
        return DirectoryEntry(
            email=user.email,
            role=user.role,
            suspended=user.status == "suspended",
            suspend_reason=user.suspend_reason or "",
        )

    async def register(self, email: str, name: str = "", role: str = "buyer", status: str = "active") -> None:
        async with self._db.transaction() as session:
            session.add(User(email=email, name=name, role=role, status=status))

    async def require_not_suspended(self, email: str) -> Optional[DirectoryEntry]:
        entry = await self.lookup(email)
        if entry is not None and entry.suspended:
            raise Forbidden("account suspended", reason=entry.suspend_reason or "Contact admin for details")
        return entry

    async def require_manager(self, email: str) -> DirectoryEntry:
        entry = await self.lookup(email)
        if entry is None or entry.role not in MANAGER_ROLES:
            raise Forbidden("forbidden access")
        if entry.suspended:
            raise Forbidden("account suspended", reason=entry.suspend_reason or "Contact admin for details")
        return entry
