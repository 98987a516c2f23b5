import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from src.config import config
from src.auth.auth_routes import router as auth_router
from src.db.book.api.book_routes import router as book_router
from src.db.book.api.admin_book_routes import router as admin_book_router
from src.db.cart.api.cart_routes import router as cart_router
from src.db.common.common_routes import router as common_router
from src.db.common.database_connection import init_database
from src.db.common.exception_handlers import register_exception_handlers
from src.db.order.api.order_routes import router as order_router
from src.db.order.api.admin_order_routes import router as admin_order_router
from src.db.report.api.admin_report_routes import router as admin_report_router
from src.db.review.api.review_routes import router as review_router
from src.db.review.api.admin_review_routes import router as admin_review_router
from src.db.user.api.user_routes import router as user_router
from src.db.user.api.admin_user_routes import router as admin_user_router
from src.mail.mail_dispatcher import mail_dispatcher

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Khởi tạo database khi start, dừng thread pool gửi mail khi tắt"""
    if config.AUTO_CREATE_TABLES:
        init_database()
    logger.info("Book Store started")
    yield
    mail_dispatcher.shutdown()
    logger.info("Book Store stopped")


# Tạo instance của FastAPI
app = FastAPI(
    title="Book Store",
    description="Cửa hàng sách trực tuyến: catalog, giỏ hàng, đặt hàng, review và trang quản trị",
    version="1.0.0",
    lifespan=lifespan,
)

# Session cookie lưu principal và flash messages
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY)

# CORS middleware để cho phép frontend truy cập
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers từ các modules
app.include_router(common_router, tags=["Health"])
app.include_router(auth_router, tags=["Auth"])
app.include_router(book_router, tags=["Catalog"])
app.include_router(review_router, tags=["Reviews"])
app.include_router(cart_router, tags=["Cart"])
app.include_router(order_router, tags=["Orders"])
app.include_router(user_router, tags=["Profile"])
app.include_router(admin_report_router, prefix="/admin", tags=["Admin"])
app.include_router(admin_book_router, prefix="/admin", tags=["Admin"])
app.include_router(admin_order_router, prefix="/admin", tags=["Admin"])
app.include_router(admin_review_router, prefix="/admin", tags=["Admin"])
app.include_router(admin_user_router, prefix="/admin", tags=["Admin"])

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
