# Identity Verifier
# Bearer credential verification at connection time

from chat_relay.auth.verifier import Identity, IdentityVerifier, extract_bearer_token

__all__ = ["Identity", "IdentityVerifier", "extract_bearer_token"]
