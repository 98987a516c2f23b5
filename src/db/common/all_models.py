"""Import toàn bộ models để SQLAlchemy đăng ký vào Base.metadata"""

from src.db.user.models.user_models import User, VerificationToken, ResetPasswordToken  # noqa: F401
from src.db.book.models.book_models import Book, BookDetail, Genre, book_genres  # noqa: F401
from src.db.cart.models.cart_models import Cart, CartItem  # noqa: F401
from src.db.order.models.order_models import Order, OrderItem, Payment  # noqa: F401
from src.db.review.models.review_models import Review, ReviewEvaluation  # noqa: F401
