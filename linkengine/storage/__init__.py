"""
Storage for links and the click log.
"""

from .link_store import LinkStore
from .click_log import ClickIngestor

__all__ = ["LinkStore", "ClickIngestor"]
