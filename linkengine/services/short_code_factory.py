"""
Factory for short code generation strategies.
One instance per strategy type, built from settings on first use.
"""

from enum import Enum

from linkengine.services.short_code_strategies import (
    ShortCodeStrategy,
    RandomShortCodeStrategy,
    PronounceableShortCodeStrategy
)
from linkengine.config import settings


class ShortCodeStrategyType(Enum):
    """Available short code generation strategies"""
    RANDOM = "random"
    PRONOUNCEABLE = "pronounceable"


class ShortCodeFactory:
    _instances = {}

    @classmethod
    def create_strategy(cls, strategy_type: ShortCodeStrategyType = None) -> ShortCodeStrategy:
        """
        Return the shared strategy for `strategy_type`.

        Args:
            strategy_type: defaults to `settings.short_code_strategy`

        Raises:
            ValueError: unknown strategy name in settings
        """
        strategy_type = strategy_type or ShortCodeStrategyType(settings.short_code_strategy)

        if strategy_type not in cls._instances:
            if strategy_type == ShortCodeStrategyType.PRONOUNCEABLE:
                cls._instances[strategy_type] = PronounceableShortCodeStrategy()
            else:
                cls._instances[strategy_type] = RandomShortCodeStrategy(length=settings.short_code_length)

        return cls._instances[strategy_type]
