from decimal import Decimal

import pytest

from src.db.book.models.book_models import Book
from src.db.book.models.book_schemas import BookUpdate, GenreCreate
from src.db.book.services.book_service import BookService
from src.db.book.services.genre_service import GenreService
from src.db.cart.services.cart_service import CartService
from src.db.common.exceptions import AlreadyExistsError, NotFoundError, ResourceInUseError


def test_blank_isbn_is_stored_as_null_and_can_repeat(db, make_book):
    first = make_book(title="First", isbn="   ")
    second = make_book(title="Second", isbn="")

    assert first.isbn is None
    assert second.isbn is None
    assert db.query(Book).filter(Book.isbn.is_(None)).count() == 2


def test_duplicate_isbn_rejected(db, make_book):
    make_book(title="First", isbn=" 978-0132350884 ")

    with pytest.raises(AlreadyExistsError) as exc_info:
        make_book(title="Second", isbn="978-0132350884")
    assert exc_info.value.message == "ISBN already exists: 978-0132350884"


def test_update_book_keeps_own_isbn_and_genres(db, make_book, make_genre):
    genre = make_genre("Fiction")
    book = make_book(title="Old", isbn="111", genre_ids=[genre.id])

    updated = BookService.update_book(db, book.id, BookUpdate(
        title="New", author="Someone", isbn="111", price=Decimal(5000), quantity=1
    ))

    assert updated.title == "New"
    assert updated.price_formatted == "5,000 VND"
    assert updated.genre_names == ["Fiction"]


def test_create_book_unknown_genre(db, make_book):
    with pytest.raises(NotFoundError):
        make_book(genre_ids=[42])
    assert db.query(Book).count() == 0


def test_browse_search_filter_and_sort(db, make_book, make_genre):
    science = make_genre("Science")
    make_book(title="Cosmos", author="Carl Sagan", price=300000, genre_ids=[science.id])
    make_book(title="Brief History of Time", author="Stephen Hawking", price=200000, genre_ids=[science.id])
    make_book(title="Dune", author="Frank Herbert", price=100000)

    assert BookService.get_books(db, keyword="sagan").total == 1
    assert BookService.get_books(db, genre_id=science.id).total == 2

    by_price = BookService.get_books(db, sort="price_asc").items
    assert [b.title for b in by_price] == ["Dune", "Brief History of Time", "Cosmos"]

    by_title = BookService.get_books(db, sort="title").items
    assert by_title[0].title == "Brief History of Time"


def test_browse_page_size_is_normalized(db, make_book):
    for i in range(3):
        make_book(title=f"Book {i}")

    page = BookService.get_books(db, page=0, size=500)
    assert page.size == 12
    assert page.total == 3
    assert page.total_pages == 1


def test_low_stock_books(db, make_book):
    make_book(title="Few", quantity=2)
    make_book(title="Many", quantity=50)

    assert [b.title for b in BookService.get_low_stock_books(db)] == ["Few"]


def test_delete_book_refused_when_in_cart(db, user, make_book):
    book = make_book()
    CartService.add_to_cart(db, user.id, book.id, 1)

    with pytest.raises(ResourceInUseError):
        BookService.delete_book(db, book.id)

    CartService.clear_cart(db, user.id)
    BookService.delete_book(db, book.id)
    with pytest.raises(NotFoundError):
        BookService.get_book(db, book.id)


def test_genre_uniqueness_is_case_insensitive(db, make_genre):
    make_genre("Poetry")

    with pytest.raises(AlreadyExistsError):
        GenreService.create_genre(db, GenreCreate(name="  poetry "))


def test_delete_genre_with_books_refused(db, make_book, make_genre):
    genre = make_genre("History")
    make_book(genre_ids=[genre.id])

    assert GenreService.get_genre(db, genre.id).book_count == 1
    with pytest.raises(ResourceInUseError) as exc_info:
        GenreService.delete_genre(db, genre.id)
    assert exc_info.value.message == "Cannot delete genre with 1 books. Remove books first."


def test_genres_listed_by_name_with_counts(db, make_book, make_genre):
    b = make_genre("B-genre")
    make_genre("A-genre")
    make_book(genre_ids=[b.id])

    genres = GenreService.get_all_genres(db)
    assert [(g.name, g.book_count) for g in genres] == [("A-genre", 0), ("B-genre", 1)]
