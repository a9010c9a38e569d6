from .link import LinkCreate, LinkUpdate, LinkResponse, LinkSnapshot, LinkPage, UTMParameters
from .analytics import AnalyticsWindow, AnalyticsSummary, GlobalStats, ReferrerCount

__all__ = [
    "LinkCreate",
    "LinkUpdate",
    "LinkResponse",
    "LinkSnapshot",
    "LinkPage",
    "UTMParameters",
    "AnalyticsWindow",
    "AnalyticsSummary",
    "GlobalStats",
    "ReferrerCount",
]
