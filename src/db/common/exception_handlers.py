from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from urllib.parse import quote
import logging

from src.db.common.exceptions import BookStoreError, LoginRequiredError
from src.db.common.flash import redirect

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Đăng ký handler chuyển lỗi nghiệp vụ chưa được route xử lý thành response"""

    @app.exception_handler(LoginRequiredError)
    async def login_required_handler(request: Request, exc: LoginRequiredError):
        return redirect(f"/login?redirect={quote(request.url.path)}")

    @app.exception_handler(BookStoreError)
    async def book_store_error_handler(request: Request, exc: BookStoreError):
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": type(exc).__name__,
                "message": exc.message,
                "path": request.url.path,
                "retryable": exc.retryable,
            },
        )
