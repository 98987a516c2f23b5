from pydantic import BaseModel, Field, computed_field
from typing import Optional
from datetime import datetime

# Review schemas
class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)

class Review(BaseModel):
    id: int
    rating: int
    comment: Optional[str] = None
    user_id: int
    user_name: str
    user_email: str
    user_role: str
    book_id: int
    book_title: str
    created_at: datetime
    updated_at: datetime

    like_count: int = 0
    dislike_count: int = 0

    # Tương tác của user đang xem
    current_user_liked: bool = False
    current_user_disliked: bool = False
    can_edit: bool = False

    @computed_field
    @property
    def net_likes(self) -> int:
        return self.like_count - self.dislike_count
