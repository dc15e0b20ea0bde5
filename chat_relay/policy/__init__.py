# Access Authorizer
# Thread membership checks for joining channels and sending messages
# Decisions are evaluated on fresh snapshots before any side effect

from chat_relay.policy.engine import (
    AccessAuthorizer,
    AccessDecision,
    Action,
    DenyReason,
)

__all__ = [
    "AccessAuthorizer",
    "AccessDecision",
    "Action",
    "DenyReason",
]
