from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from datetime import datetime
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.flash import redirect

logger = logging.getLogger(__name__)

router = APIRouter()

# Health check
@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check: kiểm tra kết nối database"""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail="Database connection failed")
    return {
        "status": "healthy",
        "database": "connected",
        "timestamp": datetime.now(),
    }


@router.get("/admin")
async def admin_home(admin: Principal = Depends(require_admin)):
    """/admin -> dashboard"""
    return redirect("/admin/dashboard")
