"""
Custom exceptions for the chaos harness.
"""


class ChaosHarnessError(Exception):
    """Base exception for harness errors."""
    pass


class LifecycleError(ChaosHarnessError):
    """Raised when an operation is invoked before initialization or while disabled."""
    pass


class IntentNotFoundError(ChaosHarnessError):
    """Raised when a store operation references an unknown intent id."""

    def __init__(self, intent_id: str):
        super().__init__(f"Intent not found: {intent_id}")
        self.intent_id = intent_id
