"""Authorization rules for website sites and pages"""

from .base import BasePolicy


class SitePolicy(BasePolicy):
    """``website.sites.*``; platform site operators may act on any site."""

    module = "website"
    resource = "sites"


class PagePolicy(BasePolicy):
    module = "website"
    resource = "pages"
