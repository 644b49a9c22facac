"""Website builder models: one site per tenant, many pages per site"""

import re

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin

SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


class WebsiteSite(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    __tablename__ = "website_site"
    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_website_site_tenant"),
        CheckConstraint("status IN ('draft', 'published', 'archived')", name="ck_website_site_status"),
    )

    name = Column(Text, nullable=False)
    # Public URLs address a site by slug alone, so slugs are global
    slug = Column(Text, nullable=False, unique=True)
    domain = Column(Text, nullable=True, unique=True)
    status = Column(Text, nullable=False, default="draft")
    settings = Column(PortableJSONB, nullable=False, default=dict)

    pages = relationship(
        "WebsitePage",
        back_populates="site",
        cascade="all, delete-orphan",
        order_by="WebsitePage.sort_order",
    )

    @validates('slug')
    def validate_slug(self, key, value):
        if not SLUG_PATTERN.match(value):
            raise ValueError("Slug must contain only lowercase letters, numbers, and hyphens")
        return value


class WebsitePage(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Page with a working ``content`` draft and the ``published_content`` snapshot served publicly."""
    __tablename__ = "website_page"
    __table_args__ = (
        UniqueConstraint("site_id", "slug", name="uq_website_page_site_slug"),
        CheckConstraint("status IN ('draft', 'published')", name="ck_website_page_status"),
    )

    site_id = Column(Uuid, ForeignKey("website_site.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    page_type = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="draft")
    content = Column(PortableJSONB, nullable=True)
    published_content = Column(PortableJSONB, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    meta = Column(PortableJSONB, nullable=True)

    site = relationship("WebsiteSite", back_populates="pages")

    @validates('slug')
    def validate_slug(self, key, value):
        if not SLUG_PATTERN.match(value):
            raise ValueError("Slug must contain only lowercase letters, numbers, and hyphens")
        return value
