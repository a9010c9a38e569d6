from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, ForeignKey

from linkengine.clock import utcnow
from linkengine.database.connection import Base


class Link(Base):
    """
    Link model for transactional data.

    Holds the destination, the gating fields and the denormalized counters.
    Click history is NOT stored here; it lives in the append-only `clicks`
    table so a popular link does not grow without bound.
    """
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    short_code = Column(String(16), unique=True, nullable=False, index=True)
    custom_alias = Column(String(64), unique=True, nullable=True, index=True)
    original_url = Column(String, nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(JSON, default=list)

    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    utm_term = Column(String(255), nullable=True)
    utm_content = Column(String(255), nullable=True)

    # Gates
    is_active = Column(Boolean, default=True, nullable=False)
    start_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)  # TTL sweep key
    is_locked = Column(Boolean, default=False, nullable=False)
    password_hash = Column(String(255), nullable=True)
    max_clicks = Column(Integer, nullable=True)
    pixel_script = Column(Text, nullable=True)

    # Counters, only ever changed through atomic UPDATEs
    click_count = Column(Integer, default=0, nullable=False)
    unique_click_count = Column(Integer, default=0, nullable=False)

    is_suspicious = Column(Boolean, default=False, nullable=False)
    security_warnings = Column(JSON, default=list)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def codes(self):
        """Every code this link answers to."""
        return [code for code in (self.short_code, self.custom_alias) if code]


class LinkCode(Base):
    """
    One row per resolvable code.

    Short codes and custom aliases share this table, so its primary key is
    the single uniqueness namespace the database enforces on insert.
    """
    __tablename__ = "link_codes"

    code = Column(String(64), primary_key=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
