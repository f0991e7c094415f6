"""Shared-secret access control for trackvault."""

from trackvault.security.gate import AccessGate, AccessLevel

__all__ = ["AccessGate", "AccessLevel"]
