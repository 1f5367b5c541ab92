"""Group, member and contact registry."""

from splitledger.registry.contacts import ContactBook
from splitledger.registry.groups import GroupRegistry

__all__ = ["ContactBook", "GroupRegistry"]
