"""
Các lỗi nghiệp vụ của Book Store.

Service raise các lỗi này; route form bắt lại để hiển thị flash message,
phần còn lại được exception handler toàn cục chuyển thành response.
"""


class BookStoreError(Exception):
    """Lỗi nghiệp vụ gốc"""

    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookStoreError):
    status_code = 404


class AlreadyExistsError(BookStoreError):
    status_code = 409


class ResourceInUseError(BookStoreError):
    status_code = 409


class InvalidInputError(BookStoreError):
    status_code = 400


class OutOfStockError(BookStoreError):
    status_code = 409


class InsufficientStockError(BookStoreError):
    status_code = 409

    def __init__(self, message: str, available: int, requested: int):
        super().__init__(message)
        self.available = available
        self.requested = requested


class EmptyCartError(BookStoreError):
    status_code = 400


class InvalidOrderStateError(BookStoreError):
    status_code = 409


class AccessDeniedError(BookStoreError):
    status_code = 403


class LoginRequiredError(BookStoreError):
    status_code = 401

    def __init__(self, message: str = "Please log in to continue"):
        super().__init__(message)


class TokenNotFoundError(BookStoreError):
    status_code = 404


class ExpiredTokenError(BookStoreError):
    status_code = 400

    def __init__(self, message: str = "Token has expired or is no longer valid"):
        super().__init__(message)


class RateLimitError(BookStoreError):
    status_code = 429

    def __init__(self, message: str, seconds_remaining: int):
        super().__init__(message)
        self.seconds_remaining = seconds_remaining


class InvalidPasswordError(BookStoreError):
    status_code = 400


class AlreadyEnabledError(BookStoreError):
    status_code = 409


class ConcurrentUpdateError(BookStoreError):
    """Bản ghi đã bị request khác cập nhật (version không khớp); có thể thử lại"""

    status_code = 409
    retryable = True

    def __init__(self, message: str = "The data was modified by another request. Please try again."):
        super().__init__(message)
