"""Remote repository access for Semble over ATProto XRPC."""

from .client import SembleClient

__all__ = ["SembleClient"]
