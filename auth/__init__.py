"""
auth — hosted identity provider access.

Provides:
  • ``SupabaseAuthClient`` (session logout, PKCE code exchange)
  • ``IdentityError``
"""

from auth.identity import IdentityError, SupabaseAuthClient, get_identity_client

__all__ = ["IdentityError", "SupabaseAuthClient", "get_identity_client"]
