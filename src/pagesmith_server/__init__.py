"""HTTP surface for PageSmith."""

from pagesmith_server.app import STATUS_BY_KIND, create_app

__all__ = ["STATUS_BY_KIND", "create_app"]
