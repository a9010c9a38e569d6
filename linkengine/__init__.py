"""
Link resolution and click-analytics engine.
"""

__version__ = "1.0.0"
