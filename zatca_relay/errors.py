from __future__ import annotations


class RelayError(RuntimeError):
    def __init__(self, message: str, code: str = "relay_error", status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class InvoiceValidationError(RelayError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, code="validation_failed")
        self.errors = list(errors or [])


class UpstreamError(RelayError):
    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message, code="upstream_rejected")
        self.stage = stage


class SignatureError(RelayError):
    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message, code="invalid_signature")


class InternalError(RelayError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="internal_error")
