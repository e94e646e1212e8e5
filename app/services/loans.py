import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, not_
from sqlalchemy.orm import Session, joinedload

from app.core.database import transaction
from app.core.errors import NotFound, AlreadyReturned
from app.models import models
from app.services import inventory

logger = logging.getLogger("elibrary.loans")


def get_student(db: Session, student_id: int) -> models.User:
    student = db.query(models.User).filter(models.User.id == student_id).first()
    if not student:
        raise NotFound(f"Student {student_id} not found")
    return student


def issue(db: Session, book_id: int, student_id: int, issued_at: datetime,
          due_date: Optional[datetime] = None) -> models.Loan:
    """Insert an issued loan.

    Only valid right after a successful :func:`inventory.reserve_copy` in the
    same transaction; the insert is flushed so a failure aborts both.
    """
    loan = models.Loan(book_id=book_id, student_id=student_id, status=models.LoanStatus.ISSUED,
                       issued_at=issued_at, return_date=due_date)
    db.add(loan)
    db.flush()
    logger.info(f"Student {student_id} issued book {book_id} loan {loan.id}")
    return loan


def issue_direct(db: Session, book_id: int, student_id: int,
                 due_date: Optional[datetime] = None) -> models.Loan:
    """Admin desk issue: reserve a copy and open a loan without a borrow request."""
    with transaction(db):
        get_student(db, student_id)
        inventory.reserve_copy(db, book_id)
        loan = issue(db, book_id, student_id, datetime.utcnow(), due_date)
    db.refresh(loan)
    return loan


def return_loan(db: Session, loan_id: int) -> models.Loan:
    """Close an issued loan and release its copy, both or neither."""
    with transaction(db):
        loan = db.query(models.Loan).filter(models.Loan.id == loan_id).with_for_update().first()
        if not loan:
            raise NotFound(f"Loan {loan_id} not found")
        if loan.status == models.LoanStatus.RETURNED:
            logger.warning(f"Loan {loan_id} was already returned")
            raise AlreadyReturned(f"Loan {loan_id} already returned")
        updated = (
            db.query(models.Loan)
            .filter(models.Loan.id == loan_id, models.Loan.status == models.LoanStatus.ISSUED)
            .update({models.Loan.status: models.LoanStatus.RETURNED,
                     models.Loan.returned_at: datetime.utcnow()},
                    synchronize_session=False)
        )
        if updated == 0:
            # lost the race against a concurrent return
            raise AlreadyReturned(f"Loan {loan_id} already returned")
        inventory.release_copy(db, loan.book_id)
    db.refresh(loan)
    logger.info(f"Loan {loan_id} returned")
    return loan


def is_overdue(loan: models.Loan, now: Optional[datetime] = None) -> bool:
    return loan.is_overdue(now)


def _filtered(db: Session, status: Optional[str] = None, overdue: Optional[bool] = None):
    query = db.query(models.Loan).options(joinedload(models.Loan.book), joinedload(models.Loan.student))
    if status:
        query = query.filter(models.Loan.status == status)
    if overdue is not None:
        late = and_(models.Loan.status == models.LoanStatus.ISSUED,
                    models.Loan.return_date.isnot(None),
                    models.Loan.return_date < datetime.utcnow())
        query = query.filter(late if overdue else not_(late))
    # loans still out first, then most recently returned / issued
    return query.order_by(models.Loan.returned_at.desc().nulls_first(),
                          models.Loan.issued_at.desc(),
                          models.Loan.id.desc())


def list_all(db: Session, status: Optional[str] = None, overdue: Optional[bool] = None,
             skip: int = 0, limit: int = 50) -> List[models.Loan]:
    return _filtered(db, status, overdue).offset(skip).limit(limit).all()


def list_for_student(db: Session, student_id: int, status: Optional[str] = None,
                     overdue: Optional[bool] = None, skip: int = 0,
                     limit: Optional[int] = None) -> List[models.Loan]:
    query = _filtered(db, status, overdue).filter(models.Loan.student_id == student_id)
    return query.offset(skip).limit(limit).all()


def student_summary(db: Session, student_id: int) -> dict:
    get_student(db, student_id)
    loans = list_for_student(db, student_id)
    current = [l for l in loans if l.status != models.LoanStatus.RETURNED]
    past = [l for l in loans if l.status == models.LoanStatus.RETURNED]
    return {"current_loans": current, "past_loans": past, "borrowed": len(current)}
