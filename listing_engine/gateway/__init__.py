"""Backend gateways.

`base.RemoteGateway` is the only contract the core depends on; `supabase`
implements it over the PostgREST HTTP API.
"""

from .base import RemoteGateway
from .supabase import SupabaseGateway

__all__ = ["RemoteGateway", "SupabaseGateway"]
