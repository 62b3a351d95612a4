from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller, decoded from a validated bearer token.

    The engine trusts this as given and only applies domain rules to it:
    ownership of an attempt, authorship of an exam, and the coarse roles

        student     takes exams
        instructor  authors exams and grades them
        admin       everything, on any exam
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def can_manage(self, created_by: str) -> bool:
        """Exam author or admin."""
        return self.is_admin() or (
            self.has_role("instructor") and self.user_id == created_by
        )
