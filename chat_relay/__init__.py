# Chat Relay - real-time negotiation chat for quotations, RFQs and products
# Authenticated WebSocket sessions over the marketplace's shared MongoDB

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from chat_relay.auth import Identity, IdentityVerifier
from chat_relay.config import RelaySettings, settings_from_env
from chat_relay.errors import RelayError
from chat_relay.readiness import ReadinessGate, ReadinessState
from chat_relay.threads import (
    ProductThread,
    QuotationThread,
    RFQThread,
    ThreadResolver,
)

__all__ = [
    "__version__",
    # Identity
    "Identity",
    "IdentityVerifier",
    # Configuration
    "RelaySettings",
    "settings_from_env",
    # Errors
    "RelayError",
    # Readiness
    "ReadinessGate",
    "ReadinessState",
    # Threads
    "ProductThread",
    "QuotationThread",
    "RFQThread",
    "ThreadResolver",
]
