"""
Error hierarchy for the cutting optimizer.

Only programmer errors are raised: an unknown strategy key, malformed
options, or a cancelled run. Requests that cannot be cut are reported in the
plan, never raised.
"""


class OptimizerError(Exception):
    """Base class for optimizer failures"""


class UnknownStrategyError(OptimizerError, KeyError):
    """Raised at lookup time when a strategy key is not registered"""

    def __init__(self, strategy: str, available=None):
        self.strategy = strategy
        self.available = list(available or [])
        message = f"Unknown strategy: {strategy!r}"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        self.message = message
        super().__init__(message)

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.message


class InvalidOptionsError(OptimizerError, ValueError):
    """Raised when strategy options have unknown fields or wrong types"""

    def __init__(self, strategy: str, detail):
        self.strategy = strategy
        self.detail = detail
        super().__init__(f"Invalid options for strategy {strategy!r}: {detail}")


class OptimizationCancelled(OptimizerError):
    """Raised when a cancellation token is triggered mid-run"""
