#!/usr/bin/env python3
"""
Migration script: chuyển các cột tiền (VND) sang NUMERIC(15,0).
Chạy script này với database tạo từ phiên bản cũ có cột giá nhỏ hơn.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from sqlalchemy import text
from src.db.common.database_connection import engine

# (table, column)
MONEY_COLUMNS = [
    ("orders", "total_amount"),
    ("order_items", "price_at_purchase"),
    ("book_details", "price"),
]

def column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text("""
        SELECT column_name
        FROM information_schema.columns
        WHERE table_name = :table AND column_name = :column
    """), {"table": table, "column": column})
    return result.fetchone() is not None

def alter_money_columns():
    """ALTER từng cột tiền sang NUMERIC(15,0) NOT NULL"""
    try:
        with engine.begin() as conn:
            for table, column in MONEY_COLUMNS:
                if not column_exists(conn, table, column):
                    print(f"- Skipped {table}.{column} (column not found)")
                    continue
                conn.execute(text(
                    f"ALTER TABLE {table} ALTER COLUMN {column} TYPE NUMERIC(15,0) USING ROUND({column})"
                ))
                conn.execute(text(f"ALTER TABLE {table} ALTER COLUMN {column} SET NOT NULL"))
                print(f"✓ {table}.{column} -> NUMERIC(15,0)")
        return True
    except Exception as e:
        print(f"✗ Failed to alter money columns: {e}")
        return False

def main():
    """Main migration function"""
    print("Starting price precision migration...")

    if engine.dialect.name != "postgresql":
        print(f"✗ This migration targets PostgreSQL, current dialect: {engine.dialect.name}")
        sys.exit(1)

    if not alter_money_columns():
        sys.exit(1)

    print("\n🎉 Database migration completed successfully!")
    print("Money columns now hold VND amounts up to 15 digits.")

if __name__ == "__main__":
    main()
