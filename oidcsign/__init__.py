"""
Keyless artifact signing using OIDC.

This package binds an OpenID Connect identity to an ephemeral ECDSA key,
obtains a short-lived certificate for it, signs an artifact and publishes
the signature to a transparency log, so no private key ever has to be stored.
"""

__version__ = "0.1.0"
