# orderhub/adapters/errors.py
"""
Provider failure taxonomy.

- AuthError          bad / expired credentials; never retried automatically
- TransientError     network, timeout, 429 / 5xx; retried with backoff
- ValidationError    bad order data; not retryable without a data fix
- AlreadyExistsError the provider already performed the operation;
                     reconciled as success with `existing_ref`
- NotConfiguredError the workspace has no provider / credentials for the role
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ProviderError(Exception):
    code = "PROVIDER_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.provider:
            out["provider"] = self.provider
        return out


class AuthError(ProviderError):
    code = "AUTH_ERROR"


class TransientError(ProviderError):
    code = "TRANSIENT_ERROR"
    retryable = True


class ValidationError(ProviderError):
    code = "VALIDATION_ERROR"


class AlreadyExistsError(ProviderError):
    code = "ALREADY_EXISTS"

    def __init__(
        self,
        message: str,
        *,
        existing_ref: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, provider=provider)
        self.existing_ref = existing_ref
        self.payload = payload or {}


class NotConfiguredError(ProviderError):
    code = "NOT_CONFIGURED"
