"""Domain errors raised by the billing services.

Services raise these and never HTTP errors; the API layer maps each class
to a status code in ``tixledger.main``.
"""


class BillingError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(BillingError):
    status_code = 404


class InvalidStateError(BillingError):
    status_code = 409


class ConflictError(BillingError):
    status_code = 409


class InsufficientBalanceError(BillingError):
    status_code = 402

    def __init__(self, required: int, available: int, detail: str | None = None):
        super().__init__(
            detail or f"Insufficient ticket balance. Required: {required}, available: {available}"
        )
        self.required = required
        self.available = available
