from .graph import GraphClient as GraphClient
from .graph import GraphUser as GraphUser

__all__ = ["GraphClient", "GraphUser"]
