"""
Token Balance Store - SocialSense Client Core
socialsense/services/balance_store.py

Session-scoped holder of the user's token balance. The only way to change
the stored value is refresh(), which re-reads it from the backend.
"""

from typing import Awaitable, Callable, List, Optional

import structlog

logger = structlog.get_logger(__name__)

BalanceListener = Callable[[int], None]


class TokenBalanceStore:
    """Observable token balance with a single writer path."""

    def __init__(self, fetch_balance: Callable[[], Awaitable[int]], initial: int = 0):
        self._fetch_balance = fetch_balance
        self._value = initial
        self._listeners: List[BalanceListener] = []
        self.last_error: Optional[str] = None

    @property
    def value(self) -> int:
        return self._value

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> int:
        """
        Re-sync the balance from the backend.

        Best-effort: failures are logged and the last known value is returned.
        """
        try:
            balance = await self._fetch_balance()
        except Exception as e:
            self.last_error = str(e)
            logger.warning("balance_refresh_failed", error=str(e))
            return self._value

        self.last_error = None
        if balance != self._value:
            self._value = balance
            self._notify(balance)
        return self._value

    def _notify(self, balance: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(balance)
            except Exception:
                logger.exception("balance_listener_failed")
