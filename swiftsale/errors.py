class SwiftSaleError(ValueError):
    status_code = 400


class ValidationError(SwiftSaleError):
    status_code = 400


class AuthError(SwiftSaleError):
    status_code = 401


class NotFoundError(SwiftSaleError):
    status_code = 404


class ConflictError(SwiftSaleError):
    status_code = 409


class InsufficientStockError(ConflictError):
    def __init__(self, name, available):
        self.name = name
        self.available = available
        super().__init__(f"Only {available} units of {name} available.")
