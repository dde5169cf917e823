"""Application-wide constants for platform-auth.

Constants that define authentication behavior.
For user-configurable settings per deployment, see config.py.
"""

import os

__all__ = [
    # Application identity
    "APP_NAME",
    "DEFAULT_TOKEN_STORE_DIR",
    # OAuth / OIDC defaults
    "DEFAULT_ACCESS_TYPE",
    "DEFAULT_ENV",
    "DEFAULT_REALM",
    "DEFAULT_RESPONSE_TYPE",
    "DEFAULT_SCOPE",
    "JWT_BEARER_CLIENT_ASSERTION_TYPE",
    "SIGNED_JWT_LIFETIME_SECONDS",
    "ENDPOINT_NAMES",
    # HTTP client
    "DEFAULT_REQUEST_TIMEOUT_SECONDS",
    # Callback server
    "CALLBACK_HOST",
    "DEFAULT_CALLBACK_PORT",
    "MIN_CALLBACK_PORT",
    "MAX_CALLBACK_PORT",
    "DEFAULT_CALLBACK_TIMEOUT_SECONDS",
    "CALLBACK_REQUEST_ID_BYTES",
    "CALLBACK_SERVER_STARTUP_TIMEOUT_SECONDS",
    "CALLBACK_SERVER_SHUTDOWN_TIMEOUT_SECONDS",
    "CALLBACK_SERVER_POLL_INTERVAL_SECONDS",
    # Token stores
    "TOKEN_STORE_TYPES",
    "DEFAULT_TOKEN_STORE_TYPE",
    "FILE_STORE_FILENAME",
    "SECURE_STORE_FILENAME",
    "FILE_STORE_KEY",
    "SECURE_STORE_KEY_BYTES",
    "DEFAULT_SECURE_SERVICE_NAME",
    # Environment variables
    "ENV_VAR_PREFIX",
]

from platformdirs import user_config_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, etc.
APP_NAME: str = "platform-auth"

# Default directory for persisted token stores when loaded from the environment.
#
# Platform-specific paths:
# - macOS: ~/Library/Application Support/platform-auth/
# - Linux: ~/.config/platform-auth/
# - Windows: %APPDATA%\platform-auth\
DEFAULT_TOKEN_STORE_DIR: str = os.path.realpath(user_config_dir(APP_NAME))

# ============================================================================
# OAuth / OIDC Defaults
# ============================================================================

DEFAULT_ENV: str = "prod"
DEFAULT_REALM: str = "Broker"

# Authorization request defaults
DEFAULT_ACCESS_TYPE: str = "offline"
DEFAULT_RESPONSE_TYPE: str = "code"
DEFAULT_SCOPE: str = "openid"

# Client assertion type for the signed JWT client credentials grant (RFC 7523)
JWT_BEARER_CLIENT_ASSERTION_TYPE: str = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

# Lifetime of a signed client assertion (seconds)
SIGNED_JWT_LIFETIME_SECONDS: int = 3600

# Endpoint names that may be overridden per authenticator
ENDPOINT_NAMES: tuple[str, ...] = ("auth", "certs", "logout", "token", "userinfo", "well_known")

# ============================================================================
# HTTP Client
# ============================================================================

# Timeout for requests to the token, userinfo, logout and well-known endpoints
DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 30.0

# ============================================================================
# Callback Server (interactive login)
# ============================================================================

# Loopback only - the redirect never leaves the machine
CALLBACK_HOST: str = "127.0.0.1"

# Preferred port, falls back to a free port when busy
DEFAULT_CALLBACK_PORT: int = 3000

# Range accepted for a configured port (no privileged ports)
MIN_CALLBACK_PORT: int = 1024
MAX_CALLBACK_PORT: int = 65535

# How long a pending callback waits for the browser redirect (seconds)
DEFAULT_CALLBACK_TIMEOUT_SECONDS: float = 120.0

# Random bytes in a callback request id (rendered as upper-case hex)
CALLBACK_REQUEST_ID_BYTES: int = 4

CALLBACK_SERVER_STARTUP_TIMEOUT_SECONDS: float = 5.0
CALLBACK_SERVER_SHUTDOWN_TIMEOUT_SECONDS: float = 2.0
CALLBACK_SERVER_POLL_INTERVAL_SECONDS: float = 0.01

# ============================================================================
# Token Stores
# ============================================================================

# - auto: try secure, then file, then memory
# - secure: encrypted file, key kept in the OS keyring
# - file: encrypted file with the built-in key
# - memory: process-local, nothing persisted
# - none: persistence disabled
TOKEN_STORE_TYPES: tuple[str, ...] = ("auto", "secure", "file", "memory", "none")
DEFAULT_TOKEN_STORE_TYPE: str = "auto"

FILE_STORE_FILENAME: str = ".tokenstore.v2"
SECURE_STORE_FILENAME: str = ".tokenstore.secure.v2"

# Built-in AES-128 key for FileStore. Obfuscation only: SecureStore keeps
# a random key in the OS keyring instead.
FILE_STORE_KEY: bytes = b"d4be0906bc9fae40"

SECURE_STORE_KEY_BYTES: int = 16
DEFAULT_SECURE_SERVICE_NAME: str = "Platform Auth"

# ============================================================================
# Environment Variables
# ============================================================================

# PLATFORM_AUTH_ENV, PLATFORM_AUTH_BASE_URL, ... (see config.load_auth_options)
ENV_VAR_PREFIX: str = "PLATFORM_AUTH_"
