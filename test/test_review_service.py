import pytest

from src.db.common.exceptions import AccessDeniedError, AlreadyExistsError, NotFoundError
from src.db.review.models.review_models import Review
from src.db.review.models.review_schemas import ReviewCreate
from src.db.review.services.review_service import ReviewService
from src.db.report.services.dashboard_service import truncate_comment


@pytest.fixture
def book(make_book):
    return make_book(title="Reviewed Book")


def _review(db, user_id, book_id, rating=5, comment="Great"):
    return ReviewService.create_review(db, user_id, book_id, ReviewCreate(rating=rating, comment=comment))


def test_one_review_per_user_and_book(db, user, book):
    _review(db, user.id, book.id)

    with pytest.raises(AlreadyExistsError) as exc_info:
        _review(db, user.id, book.id, rating=1)
    assert exc_info.value.message == "You have already reviewed this book"
    assert db.query(Review).count() == 1


def test_review_unknown_book(db, user):
    with pytest.raises(NotFoundError):
        _review(db, user.id, 999)


def test_only_author_can_edit(db, user, make_user, book):
    other = make_user()
    review = _review(db, user.id, book.id)

    with pytest.raises(AccessDeniedError):
        ReviewService.update_review(db, review.id, other.id, ReviewCreate(rating=1))

    updated = ReviewService.update_review(db, review.id, user.id, ReviewCreate(rating=3, comment="Okay"))
    assert (updated.rating, updated.comment, updated.can_edit) == (3, "Okay", True)


def test_like_toggles(db, user, make_user, book):
    voter = make_user()
    review = _review(db, user.id, book.id)

    assert ReviewService.like_review(db, review.id, voter.id) == 1
    assert ReviewService.like_review(db, review.id, voter.id) == 0
    assert ReviewService.get_dislike_count(db, review.id) == 0


def test_like_then_dislike_switches(db, user, make_user, book):
    voter = make_user()
    review = _review(db, user.id, book.id)

    ReviewService.like_review(db, review.id, voter.id)
    assert ReviewService.dislike_review(db, review.id, voter.id) == 1
    assert ReviewService.get_like_count(db, review.id) == 0

    dto = ReviewService.get_review(db, review.id, voter.id)
    assert dto.current_user_disliked and not dto.current_user_liked
    assert dto.net_likes == -1


def test_reviews_in_page_ordered_by_net_likes(db, make_user, book):
    authors = [make_user() for _ in range(3)]
    voters = [make_user() for _ in range(2)]
    low = _review(db, authors[0].id, book.id, comment="low")
    top = _review(db, authors[1].id, book.id, comment="top")
    _review(db, authors[2].id, book.id, comment="plain")

    for voter in voters:
        ReviewService.like_review(db, top.id, voter.id)
    ReviewService.dislike_review(db, low.id, voters[0].id)

    page = ReviewService.get_reviews_by_book(db, book.id)
    assert [r.comment for r in page.items] == ["top", "plain", "low"]
    assert page.total == 3


def test_rating_stats(db, make_user, book):
    for rating in (5, 4, 4):
        _review(db, make_user().id, book.id, rating=rating)

    assert ReviewService.get_review_count(db, book.id) == 3
    assert ReviewService.get_average_rating(db, book.id) == pytest.approx(4.33, abs=0.01)
    assert ReviewService.get_rating_distribution(db, book.id) == {1: 0, 2: 0, 3: 0, 4: 2, 5: 1}


def test_user_review_lookup(db, user, book):
    assert not ReviewService.has_user_reviewed_book(db, user.id, book.id)
    assert ReviewService.get_user_review_for_book(db, user.id, book.id) is None

    _review(db, user.id, book.id)

    assert ReviewService.has_user_reviewed_book(db, user.id, book.id)
    assert ReviewService.count_user_reviews(db, user.id) == 1
    assert ReviewService.get_reviews_by_user(db, user.id).items[0].book_title == "Reviewed Book"


def test_admin_remove_comment_keeps_rating_and_delete(db, user, make_user, book):
    review = _review(db, user.id, book.id, rating=2, comment="Spam")
    ReviewService.like_review(db, review.id, make_user().id)

    stripped = ReviewService.remove_review_comment(db, review.id)
    assert (stripped.rating, stripped.comment) == (2, None)

    ReviewService.delete_review(db, review.id)
    assert ReviewService.get_all_reviews(db).total == 0
    with pytest.raises(NotFoundError):
        ReviewService.get_review(db, review.id)


def test_truncate_comment():
    assert truncate_comment(None) is None
    assert truncate_comment("short") == "short"
    long_comment = "x" * 101
    assert truncate_comment(long_comment) == "x" * 97 + "..."


def test_recent_reviews_newest_first(db, make_user, book):
    for comment in ("first", "second", "third"):
        _review(db, make_user().id, book.id, comment=comment)

    recent = ReviewService.get_recent_reviews(db, limit=2)

    assert [r.comment for r in recent] == ["third", "second"]
    assert recent[0].book_title == "Reviewed Book"
