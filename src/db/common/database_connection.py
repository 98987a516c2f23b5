from contextlib import contextmanager
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.orm.exc import StaleDataError
from typing import Generator, Iterator
import logging

from src.config import config
from src.db.common.exceptions import ConcurrentUpdateError

logger = logging.getLogger(__name__)

# SQLAlchemy setup
engine = create_engine(
    config.DATABASE_URL,
    pool_pre_ping=True,  # Test connections before using them
    pool_recycle=300,    # Recycle connections after 5 minutes
    echo=False           # Set to True for SQL query logging in development
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

def get_db() -> Generator[Session, None, None]:
    """
    Dependency để inject database session vào FastAPI routes
    Sử dụng trong routes với: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def transactional(db: Session) -> Iterator[Session]:
    """
    Unit of work cho một use case ghi dữ liệu.

    Commit khi khối lệnh chạy xong, rollback toàn bộ khi có bất kỳ lỗi nào.
    Xung đột version (optimistic locking) được chuyển thành ConcurrentUpdateError.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning("Optimistic lock conflict: %s", e)
        raise ConcurrentUpdateError() from e
    except Exception:
        db.rollback()
        raise

def create_tables(bind=None):
    """
    Tạo tất cả tables trong database
    Gọi hàm này khi khởi tạo ứng dụng lần đầu
    """
    # Đăng ký toàn bộ models vào metadata trước khi create_all
    import src.db.common.all_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

def drop_tables(bind=None):
    """
    Xóa tất cả tables (chỉ dùng trong development/testing)
    """
    import src.db.common.all_models  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)

def check_connection() -> bool:
    """Kiểm tra kết nối database"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False

def init_database():
    """
    Khởi tạo database - tạo tables nếu chưa tồn tại
    """
    try:
        create_tables()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Error creating database tables: %s", e)
        raise
