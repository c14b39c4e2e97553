"""Timer repository"""
from typing import List

from supabase import Client  # type: ignore

from app.features.timers.domain import Timer, TimerCreate, TimerUpdate

from .base import OwnedRepository


class TimerRepository(OwnedRepository[Timer, TimerCreate, TimerUpdate]):
    """Repository for timer rows"""

    def __init__(self, client: Client):
        super().__init__(client, "timers", Timer)

    async def find_by_user(self, user_id: str) -> List[Timer]:
        """All timers for a user in display order (stored values, not reconciled)"""
        return await self.find_by_owner(user_id, order_by="display_order")

    async def next_display_order(self, user_id: str) -> int:
        """Position after the user's last timer, 0 for the first one"""
        response = (
            self._table()
            .select("display_order")
            .eq(self.owner_column, user_id)
            .order("display_order", desc=True)
            .limit(1)
            .execute()
        )

        if not response.data:
            return 0

        return int(response.data[0]["display_order"]) + 1
