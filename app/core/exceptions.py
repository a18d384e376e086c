class AppError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InsufficientCreditsError(AppError):
    def __init__(self, balance: int, required: int):
        super().__init__(
            f"Insufficient credits: balance={balance}, required={required}",
            status_code=402,
        )
        self.balance = balance
        self.required = required


class IdempotencyError(AppError):
    """The idempotency key was already applied to this account's ledger.

    Callers should treat this as "already processed", not as a failure.
    """

    def __init__(self, key: str):
        super().__init__(f"Idempotency key already processed: {key}", status_code=409)
        self.key = key


class NotFoundError(AppError):
    def __init__(self, entity: str, id: str):
        super().__init__(f"{entity} not found: {id}", status_code=404)


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str):
        super().__init__("Account", account_id)
        self.account_id = account_id


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)
