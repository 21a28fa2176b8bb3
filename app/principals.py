"""Principal variants and the explicit session context.

A principal is exactly one of `Admin`, `Manager` or `Employee`. Authorization
code checks the variant type rather than comparing role strings, and every
service operation receives a `SessionContext` from its caller instead of
reading session state from anywhere global.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.models import Role, User


@dataclass(frozen=True)
class Admin:
    principal_id: int

    role = Role.ADMIN


@dataclass(frozen=True)
class Manager:
    principal_id: int

    role = Role.MANAGER


@dataclass(frozen=True)
class Employee:
    principal_id: int
    manager_id: int | None = None

    role = Role.EMPLOYEE


Principal = Admin | Manager | Employee


@dataclass(frozen=True)
class SessionContext:
    principal: Principal
    name: str = ""
    email: str = ""

    @property
    def principal_id(self) -> int:
        return self.principal.principal_id

    @property
    def is_admin(self) -> bool:
        return isinstance(self.principal, Admin)

    @property
    def is_manager(self) -> bool:
        return isinstance(self.principal, Manager)

    @property
    def can_review(self) -> bool:
        return isinstance(self.principal, (Admin, Manager))


def principal_for(user: User) -> Principal:
    """Build the principal variant for a persisted user."""
    if user.role == Role.ADMIN:
        return Admin(principal_id=user.id)
    if user.role == Role.MANAGER:
        return Manager(principal_id=user.id)
    return Employee(principal_id=user.id, manager_id=user.manager_id)


def context_for(user: User) -> SessionContext:
    return SessionContext(principal=principal_for(user), name=user.name, email=user.email)
