"""Exception types for conditions that are not expressible as a validation result.

Expected outcomes (not found, mismatch, insufficient balance) travel as
``RefillResult`` failures with a code. These exceptions cover the unexpected and
are converted into coded results at the orchestrator or transport boundary.
"""
from typing import Optional


class RefillError(Exception):
    code = "REFILL_ERROR"


class ConfigurationError(RefillError):
    """Asset, wallet or provider misconfiguration found at runtime."""
    code = "CONFIGURATION_ERROR"


class LedgerError(RefillError):
    code = "LEDGER_ERROR"


class ProviderError(RefillError):
    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.detail = message
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    code = "PROVIDER_TIMEOUT"
