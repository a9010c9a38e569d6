import logging
from typing import Optional

from linkengine.config import settings
from linkengine.errors import AliasTaken, AllocationExhausted
from linkengine.services.short_code_factory import ShortCodeFactory
from linkengine.services.short_code_strategies import ShortCodeStrategy
from linkengine.storage.link_store import LinkStore

logger = logging.getLogger(__name__)


class ShortCodeAllocator:
    """
    Picks a code for a new link.

    Allocation is advisory: a free code can still be claimed by a concurrent
    request before our insert lands. The store's insert-or-fail is what
    actually guarantees uniqueness.
    """

    def __init__(
        self,
        store: LinkStore,
        strategy: Optional[ShortCodeStrategy] = None,
        max_retries: Optional[int] = None
    ):
        self.store = store
        self.strategy = strategy or ShortCodeFactory.create_strategy()
        self.max_retries = max_retries if max_retries is not None else settings.max_retries

    def allocate(self, requested_alias: Optional[str] = None) -> str:
        """
        Validate a requested alias, or generate a free random code.

        Raises:
            AliasTaken: requested alias already exists
            AllocationExhausted: no free code within max_retries attempts
        """
        if requested_alias is not None:
            if self.store.code_exists(requested_alias):
                raise AliasTaken(requested_alias)
            return requested_alias

        for attempt in range(1, self.max_retries + 1):
            code = self.strategy.generate()
            if not self.store.code_exists(code):
                return code
            logger.debug("Short code collision on attempt %s: %s", attempt, code)

        raise AllocationExhausted(self.max_retries)
