"""
Role checks for registry operations.

Two independent principals gate disjoint operation sets:

- administrator: registers packets, sets validity and rewards; transferable
- reward pool: triggers distributions; fixed at construction

Both checks are plain equality against the stored account.
"""

from __future__ import annotations

from .errors import OnlyAdministrator, OnlyRewardPool


class AccessPolicy:
    def __init__(self, administrator: str, reward_pool: str):
        if not administrator:
            raise ValueError("administrator is required")
        if not reward_pool:
            raise ValueError("reward_pool is required")
        self._administrator = administrator
        self._reward_pool = reward_pool

    @property
    def administrator(self) -> str:
        return self._administrator

    @property
    def reward_pool(self) -> str:
        return self._reward_pool

    def is_administrator(self, caller: str) -> bool:
        return caller == self._administrator

    def is_reward_pool(self, caller: str) -> bool:
        return caller == self._reward_pool

    def require_administrator(self, caller: str) -> None:
        if not self.is_administrator(caller):
            raise OnlyAdministrator(caller)

    def require_reward_pool(self, caller: str) -> None:
        if not self.is_reward_pool(caller):
            raise OnlyRewardPool(caller)

    def transfer_administration(self, caller: str, new_administrator: str) -> str:
        """
        Hand the administrator role to another account.

        Returns:
            The previous administrator
        """
        self.require_administrator(caller)
        if not new_administrator:
            raise ValueError("new administrator is required")
        previous = self._administrator
        self._administrator = new_administrator
        return previous
