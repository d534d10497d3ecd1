"""Template-driven administrative automation for Microsoft Graph tenants."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
