"""Authenticators and grant strategies.

This package provides:
- Authenticator: shared OAuth plumbing (endpoints, hash, token exchange,
  user info, interactive login)
- Grant strategies plugged into an Authenticator:
  - PKCE: browser login with a code verifier (default)
  - OwnerPassword: username and password
  - ClientSecret: confidential client, as a service account or via browser
  - SignedJWT: client assertion signed with a private key
"""

from platform_auth.authenticators.authenticator import Authenticator, AuthenticatorConfig, ManualLogin
from platform_auth.authenticators.client_secret import ClientSecret
from platform_auth.authenticators.grant import Grant
from platform_auth.authenticators.owner_password import OwnerPassword
from platform_auth.authenticators.pkce import PKCE
from platform_auth.authenticators.signed_jwt import SignedJWT

__all__ = [
    "Authenticator",
    "AuthenticatorConfig",
    "ClientSecret",
    "Grant",
    "ManualLogin",
    "OwnerPassword",
    "PKCE",
    "SignedJWT",
]
