from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List
import logging

from src.db.book.models.book_models import Genre, book_genres
from src.db.book.models.book_schemas import Genre as GenreDto, GenreCreate
from src.db.common.database_connection import transactional
from src.db.common.exceptions import NotFoundError, AlreadyExistsError, ResourceInUseError

logger = logging.getLogger(__name__)


class GenreService:
    @staticmethod
    def _name_taken(db: Session, name: str, exclude_id: int = None) -> bool:
        query = db.query(Genre.id).filter(func.lower(Genre.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(Genre.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def _book_count(db: Session, genre_id: int) -> int:
        return db.query(func.count(book_genres.c.book_id))\
            .filter(book_genres.c.genre_id == genre_id).scalar() or 0

    @staticmethod
    def get_all_genres(db: Session) -> List[GenreDto]:
        """Danh sách thể loại theo tên, kèm số sách"""
        rows = db.query(Genre.id, Genre.name, func.count(book_genres.c.book_id))\
            .outerjoin(book_genres, book_genres.c.genre_id == Genre.id)\
            .group_by(Genre.id, Genre.name)\
            .order_by(Genre.name).all()
        return [GenreDto(id=genre_id, name=name, book_count=count) for genre_id, name, count in rows]

    @staticmethod
    def get_genre(db: Session, genre_id: int) -> GenreDto:
        genre = db.query(Genre).filter(Genre.id == genre_id).first()
        if not genre:
            raise NotFoundError(f"Genre not found: {genre_id}")
        return GenreDto(id=genre.id, name=genre.name, book_count=GenreService._book_count(db, genre.id))

    @staticmethod
    def create_genre(db: Session, genre_in: GenreCreate) -> GenreDto:
        logger.info("Creating new genre: %s", genre_in.name)
        with transactional(db):
            if GenreService._name_taken(db, genre_in.name):
                raise AlreadyExistsError(f"Genre name already exists: {genre_in.name}")
            genre = Genre(name=genre_in.name)
            db.add(genre)
            db.flush()
            genre_id = genre.id

        logger.info("Genre created successfully with ID: %s", genre_id)
        return GenreService.get_genre(db, genre_id)

    @staticmethod
    def update_genre(db: Session, genre_id: int, genre_in: GenreCreate) -> GenreDto:
        logger.info("Updating genre with ID: %s", genre_id)
        with transactional(db):
            genre = db.query(Genre).filter(Genre.id == genre_id).first()
            if not genre:
                raise NotFoundError(f"Genre not found: {genre_id}")
            if GenreService._name_taken(db, genre_in.name, exclude_id=genre_id):
                raise AlreadyExistsError(f"Genre name already exists: {genre_in.name}")
            genre.name = genre_in.name

        logger.info("Genre updated successfully: %s", genre_id)
        return GenreService.get_genre(db, genre_id)

    @staticmethod
    def delete_genre(db: Session, genre_id: int) -> None:
        """Xóa thể loại; từ chối khi vẫn còn sách thuộc thể loại này"""
        logger.info("Deleting genre with ID: %s", genre_id)
        with transactional(db):
            genre = db.query(Genre).filter(Genre.id == genre_id).first()
            if not genre:
                raise NotFoundError(f"Genre not found: {genre_id}")
            book_count = GenreService._book_count(db, genre_id)
            if book_count > 0:
                raise ResourceInUseError(f"Cannot delete genre with {book_count} books. Remove books first.")
            db.delete(genre)

        logger.info("Genre deleted successfully: %s", genre_id)
