# Readiness Gate
# Decides whether persistence-dependent work may proceed

from chat_relay.readiness.gate import ReadinessGate, ReadinessState, StateListener

__all__ = ["ReadinessGate", "ReadinessState", "StateListener"]
