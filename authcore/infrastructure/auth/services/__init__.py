"""Authentication service components."""

from .authentication_orchestrator import AuthenticationOrchestrator

__all__ = ["AuthenticationOrchestrator"]
