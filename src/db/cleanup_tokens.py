#!/usr/bin/env python3
"""
Xóa token xác thực email và token đặt lại mật khẩu đã hết hạn.
Chạy định kỳ bằng cron, ví dụ mỗi giờ:

    0 * * * * cd /path/to/book-store && python -m src.db.cleanup_tokens
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from src.db.common.database_connection import SessionLocal
from src.db.user.services.token_service import TokenService

def main():
    print("Cleaning up expired tokens...")

    db = SessionLocal()
    try:
        verification_count, reset_count = TokenService.delete_expired_tokens(db)
        print(f"✓ Deleted {verification_count} expired verification tokens")
        print(f"✓ Deleted {reset_count} expired reset password tokens")
    except Exception as e:
        print(f"✗ Token cleanup failed: {e}")
        sys.exit(1)
    finally:
        db.close()

if __name__ == "__main__":
    main()
