from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index

from linkengine.database.connection import Base


class Click(Base):
    """
    One admitted visit. Append-only: rows are never updated, and are only
    deleted in bulk together with their link.
    """
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    ip_address = Column(String(45), nullable=False)  # IPv4 or IPv6
    user_agent = Column(String, nullable=True)
    referrer = Column(String, nullable=True)

    browser = Column(String(64), default="Unknown")
    os = Column(String(64), default="Unknown")
    device = Column(String(16), default="unknown")  # desktop, mobile, tablet, unknown
    country = Column(String(64), default="Unknown")
    city = Column(String(128), default="Unknown")

    # Computed once at ingestion, never recomputed
    is_unique = Column(Boolean, nullable=False)

    __table_args__ = (
        Index("ix_clicks_link_ip_ts", "link_id", "ip_address", "timestamp"),
    )
