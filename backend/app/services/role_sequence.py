"""Role Sequence Table and per-submitter approval flows.

Both are read-only after construction and injected into the routing engine.
"""
from collections.abc import Iterable, Mapping

from app.core.config import settings


class RoleSequence:
    """Ordered, immutable list of approver roles. Level N is ``roles[N - 1]``."""

    __slots__ = ("_roles",)

    def __init__(self, roles: Iterable[str]):
        cleaned = tuple(r.strip() if isinstance(r, str) else r for r in roles)
        if not cleaned:
            raise ValueError("Role sequence must contain at least one role.")
        if any(not isinstance(r, str) or not r for r in cleaned):
            raise ValueError(f"Role sequence contains a blank role: {list(cleaned)!r}")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError(f"Role sequence contains duplicate roles: {list(cleaned)!r}")
        self._roles = cleaned

    @property
    def roles(self) -> tuple[str, ...]:
        return self._roles

    def __len__(self) -> int:
        return len(self._roles)

    def __iter__(self):
        return iter(self._roles)

    def __eq__(self, other) -> bool:
        if isinstance(other, RoleSequence):
            return self._roles == other._roles
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._roles)

    def __repr__(self) -> str:
        return f"RoleSequence({list(self._roles)!r})"

    def first(self) -> str:
        return self._roles[0]

    def role_at(self, level: int) -> str | None:
        """Role for a 1-based level, or None past the end."""
        if 1 <= level <= len(self._roles):
            return self._roles[level - 1]
        return None

    def level_of(self, role: str) -> int | None:
        try:
            return self._roles.index(role) + 1
        except ValueError:
            return None

    def next_after(self, role: str) -> str | None:
        """The role immediately after `role`; None if `role` is last or unknown."""
        level = self.level_of(role)
        if level is None:
            return None
        return self.role_at(level + 1)


class ApprovalFlowTable:
    """Maps a submitter's role to the RoleSequence their requests travel.

    Submitter roles without an explicit flow use the default sequence.
    """

    def __init__(
        self,
        default: RoleSequence | Iterable[str],
        flows: Mapping[str, RoleSequence | Iterable[str]] | None = None,
    ):
        self.default = default if isinstance(default, RoleSequence) else RoleSequence(default)
        self._flows: dict[str, RoleSequence] = {
            submitter_role: seq if isinstance(seq, RoleSequence) else RoleSequence(seq)
            for submitter_role, seq in (flows or {}).items()
        }

    def for_submitter(self, submitter_role: str | None) -> RoleSequence:
        if submitter_role is None:
            return self.default
        return self._flows.get(submitter_role, self.default)

    @property
    def submitter_roles(self) -> list[str]:
        return sorted(self._flows)

    @property
    def approver_roles(self) -> frozenset[str]:
        """Every role that appears at some level of some flow."""
        roles = set(self.default)
        for seq in self._flows.values():
            roles.update(seq)
        return frozenset(roles)


def flow_table_from_settings() -> ApprovalFlowTable:
    """Build the process-wide flow table from APPROVAL_ROLE_SEQUENCE / APPROVAL_FLOWS."""
    return ApprovalFlowTable(
        default=settings.role_sequence_list,
        flows=settings.approval_flows_map,
    )
