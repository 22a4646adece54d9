"""
Category icons and their managed remote contact groups.

A contact lives in exactly one managed group, chosen by its icon. Group
membership is advisory: the worker swallows failures raised here.
"""
from enum import Enum
from typing import Optional

from tribu.logging_config import get_logger
from tribu.outbox.errors import GroupNotFoundError

logger = get_logger(__name__)


class Category(Enum):
    HEART = ("♥️", "01♥️")
    UNDER_CONSTRUCTION = ("\U0001F3D7️", "02\U0001F3D7")
    GREEN = ("\U0001F7E2", "03\U0001F7E2")
    ROADWORK = ("\U0001F6A7", "04\U0001F6A7")
    YELLOW = ("\U0001F7E1", "05\U0001F7E1")
    WHITE = ("⚪", "06⚪️")
    RED = ("\U0001F534", "07\U0001F534")
    TOOLS = ("\U0001F6E0️", "99\U0001F6E0")

    def __init__(self, icon, group_name):
        self.icon = icon
        self.group_name = group_name

    @classmethod
    def from_icon(cls, icon) -> Optional["Category"]:
        icon = str(icon or "").strip()
        for category in cls:
            if category.icon == icon:
                return category
        return None

    @classmethod
    def from_group_name(cls, name) -> Optional["Category"]:
        name = str(name or "").strip()
        for category in cls:
            if category.group_name == name:
                return category
        return None


def load_group_resource_names():
    """Managed group name -> remote resource name, from the local ledger."""
    from tribu.models import ContactGroup

    return {g.name: g.resource_name for g in ContactGroup.query.all() if g.name and g.resource_name}


def group_memberships(record):
    """Resource names of the contact groups a remote record belongs to."""
    names = set()
    for membership in (record or {}).get("memberships") or []:
        group = (membership or {}).get("contactGroupMembership") or {}
        rn = group.get("contactGroupResourceName")
        if rn:
            names.add(rn)
    return names


class GroupClassifier:
    """Moves a remote contact into the group matching its category icon."""

    def __init__(self, people_client, group_lookup=load_group_resource_names):
        self.people = people_client
        self.group_lookup = group_lookup

    def classify(self, remote_id: str, icon: str, member_of=None) -> Optional[Category]:
        """
        Args:
            remote_id: remote contact resource name
            icon: category icon
            member_of: resource names of the groups the contact is known to be in;
                       None means unknown, so every other managed group is cleared

        Returns:
            The category applied, or None when the icon is unmapped.

        Raises:
            GroupNotFoundError: the target group has no resource name
        """
        category = Category.from_icon(icon)
        if category is None:
            return None

        resource_names = self.group_lookup()
        target = resource_names.get(category.group_name)
        if not target:
            raise GroupNotFoundError(f"No contact group registered for {category.group_name}")

        for other in Category:
            rn = resource_names.get(other.group_name)
            if not rn or rn == target:
                continue
            if member_of is not None and rn not in member_of:
                continue
            try:
                self.people.modify_group_members(rn, remove=[remote_id])
            except Exception as e:
                logger.debug(f"Removing {remote_id} from {rn} failed: {e}")

        self.people.modify_group_members(target, add=[remote_id])
        logger.info(f"Contact {remote_id} classified into {category.group_name}")
        return category
