"""
Read-side grouping of patient records into family units.

Staff rosters are flat lists of ``FamilyMember`` rows. Booking and browsing
screens show them clustered under the responsible account owner, the member
whose relationship is ``"Me"``. Groups are recomputed on every read and are
never stored.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from vaxfamily.db.models.family_member import OWNER_RELATIONSHIP


@dataclass
class FamilyGroup:
    owner: Any
    members: List[Any] = field(default_factory=list)

    @property
    def surname(self) -> str:
        return surname_token(self.owner.name) or self.owner.name


def surname_token(name: Optional[str]) -> Optional[str]:
    """Second whitespace-delimited token of a name, or None for single-token names."""
    if not name:
        return None
    tokens = name.split()
    return tokens[1] if len(tokens) > 1 else None


def _key(member: Any) -> Any:
    member_id = getattr(member, "id", None)
    return member_id if member_id is not None else id(member)


def _find_owner(member: Any, owners: Sequence[Any], owners_by_id: Dict[Any, Any]) -> Any:
    if member.relationship == OWNER_RELATIONSHIP:
        return member

    linked = getattr(member, "family_owner_id", None)
    if linked is not None and linked in owners_by_id:
        return owners_by_id[linked]

    surname = surname_token(member.name)
    if surname is not None:
        for owner in owners:
            if surname_token(owner.name) == surname:
                return owner

    return member


def group_by_family(members: Sequence[Any]) -> List[FamilyGroup]:
    """
    Partition ``members`` into family groups.

    Owner resolution, first match wins:

    1. a ``"Me"`` member owns its own group;
    2. an explicit ``family_owner_id`` naming a ``"Me"`` member of the input;
    3. the first ``"Me"`` member whose surname token equals the member's;
    4. otherwise the member heads a singleton group.

    Groups keep the order in which they are first seen. Within a group the
    owner is listed first and everyone else keeps input order. Every input
    member appears in exactly one group.
    """
    owners = [m for m in members if m.relationship == OWNER_RELATIONSHIP]
    owners_by_id = {getattr(o, "id", None): o for o in owners if getattr(o, "id", None) is not None}

    order: List[Any] = []
    heads: Dict[Any, Any] = {}
    dependents: Dict[Any, List[Any]] = {}

    for member in members:
        owner = _find_owner(member, owners, owners_by_id)
        key = _key(owner)
        if key not in heads:
            heads[key] = owner
            dependents[key] = []
            order.append(key)
        if member is not owner:
            dependents[key].append(member)

    return [FamilyGroup(owner=heads[key], members=[heads[key], *dependents[key]]) for key in order]
