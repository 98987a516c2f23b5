from pydantic import BaseModel
from typing import Generic, List, TypeVar
import math

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Một trang kết quả (page đánh số từ 0)"""
    items: List[T]
    total: int
    page: int
    size: int
    total_pages: int

    @classmethod
    def build(cls, items: List[T], total: int, page: int, size: int) -> "Page[T]":
        total_pages = math.ceil(total / size) if size > 0 else 0
        return cls(items=items, total=total, page=page, size=size, total_pages=total_pages)


def normalize_page(page: int, size: int, default_size: int, max_size: int = 50):
    """Chuẩn hóa tham số phân trang; size quá lớn quay về mặc định"""
    if page < 0:
        page = 0
    if size <= 0 or size > max_size:
        size = default_size
    return page, size
