from typing import Optional


class LedgerError(Exception):
    pass


class NotFoundError(LedgerError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class ReasonNotFoundError(NotFoundError):
    pass


class RewardNotFoundError(NotFoundError):
    pass


class AwardNotFoundError(NotFoundError):
    pass


class RedemptionNotFoundError(NotFoundError):
    pass


class InvalidInputError(LedgerError):
    pass


class ReasonRequiredError(InvalidInputError):
    pass


class ImportValidationError(InvalidInputError):
    def __init__(self, message: str, problems: Optional[list[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class InsufficientBalanceError(LedgerError):
    def __init__(self, username: str, balance: int, cost: int):
        super().__init__(f"{username} doesn't have enough stars (has {balance}, needs {cost})")
        self.username = username
        self.balance = balance
        self.cost = cost


class ConflictError(LedgerError):
    pass
