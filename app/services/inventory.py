"""Per-book copy counters.

Every counter change is a single conditional UPDATE so that concurrent
handlers never read-modify-write across two round trips.  Callers that
combine a counter change with another write wrap both in
``app.core.database.transaction``.
"""
import logging
from typing import List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.core.errors import NotFound, OutOfStock, ValidationError, InvalidState
from app.models import models

logger = logging.getLogger("elibrary.inventory")


def get_book(db: Session, book_id: int) -> models.Book:
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if not book:
        raise NotFound(f"Book {book_id} not found")
    return book


def reserve_copy(db: Session, book_id: int) -> None:
    """Claim one copy of ``book_id``; raises OutOfStock when none are left."""
    updated = (
        db.query(models.Book)
        .filter(models.Book.id == book_id, models.Book.available_copies > 0)
        .update({models.Book.available_copies: models.Book.available_copies - 1},
                synchronize_session=False)
    )
    if updated == 0:
        get_book(db, book_id)
        logger.warning(f"Reservation refused, book {book_id} is out of stock")
        raise OutOfStock(f"No copies of book {book_id} available")
    logger.info(f"Reserved a copy of book {book_id}")


def release_copy(db: Session, book_id: int) -> None:
    # clamp at total so a double release cannot overcount
    available = models.Book.available_copies
    updated = (
        db.query(models.Book)
        .filter(models.Book.id == book_id)
        .update({available: case((available < models.Book.total_copies, available + 1),
                                 else_=models.Book.total_copies)},
                synchronize_session=False)
    )
    if updated == 0:
        raise NotFound(f"Book {book_id} not found")
    logger.info(f"Released a copy of book {book_id}")


def resize(db: Session, book_id: int, new_total: int) -> models.Book:
    """Set total copies and shift available copies by the same delta, clamped to [0, new_total]."""
    if new_total is None or new_total < 0:
        raise ValidationError("total_copies must be >= 0")
    shifted = models.Book.available_copies + (new_total - models.Book.total_copies)
    updated = (
        db.query(models.Book)
        .filter(models.Book.id == book_id)
        .update({models.Book.available_copies: case((shifted < 0, 0),
                                                    (shifted > new_total, new_total),
                                                    else_=shifted),
                 models.Book.total_copies: new_total},
                synchronize_session=False)
    )
    if updated == 0:
        raise NotFound(f"Book {book_id} not found")
    book = get_book(db, book_id)
    db.refresh(book)
    logger.info(f"Resized book {book_id} to total={book.total_copies} available={book.available_copies}")
    return book


def create_book(db: Session, title: str, author: str, total_copies: int,
                genre: Optional[str] = None) -> models.Book:
    if total_copies < 0:
        raise ValidationError("total_copies must be >= 0")
    book = models.Book(
        title=title.strip(),
        author=author.strip(),
        genre=genre.strip() if genre else None,
        total_copies=total_copies,
        available_copies=total_copies,
    )
    db.add(book)
    db.flush()
    logger.info(f"Created book id={book.id} title={book.title}")
    return book


def update_book_details(db: Session, book_id: int, data: dict) -> models.Book:
    """Edit catalog fields; a ``total_copies`` change goes through :func:`resize`."""
    book = get_book(db, book_id)
    data = dict(data)
    new_total = data.pop("total_copies", None)
    for k, v in data.items():
        if v is not None:
            setattr(book, k, v.strip() if isinstance(v, str) else v)
    db.flush()
    if new_total is not None:
        book = resize(db, book_id, new_total)
    logger.info(f"Updated book id={book.id}")
    return book


def list_books(db: Session, skip: int = 0, limit: int = 20) -> List[models.Book]:
    return db.query(models.Book).order_by(models.Book.title).offset(skip).limit(limit).all()


def delete_book(db: Session, book_id: int) -> None:
    book = get_book(db, book_id)
    active_loans = db.query(models.Loan).filter(models.Loan.book_id == book.id,
                                                models.Loan.status == models.LoanStatus.ISSUED).count()
    if active_loans > 0:
        raise InvalidState("Cannot delete book with active loans")
    pending = db.query(models.BorrowRequest).filter(models.BorrowRequest.book_id == book.id,
                                                    models.BorrowRequest.status == models.RequestStatus.PENDING).count()
    if pending > 0:
        raise InvalidState("Cannot delete book with pending borrow requests")
    db.delete(book)
    db.flush()
    logger.info(f"Deleted book id={book_id}")
