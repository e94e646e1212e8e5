"""Borrow requests: pending -> approved | rejected, never back.

Availability is not checked on submit; it is checked when an admin approves,
since stock can change a lot in between.
"""
import calendar
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.core.database import transaction
from app.core.errors import NotFound, InvalidState
from app.models import models
from app.services import inventory, loans

logger = logging.getLogger("elibrary.requests")


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month arithmetic; the day is clamped to the end of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def get_request(db: Session, request_id: int) -> models.BorrowRequest:
    req = db.query(models.BorrowRequest).filter(models.BorrowRequest.id == request_id).first()
    if not req:
        raise NotFound(f"Borrow request {request_id} not found")
    return req


def submit(db: Session, student_id: int, book_id: int) -> models.BorrowRequest:
    with transaction(db):
        loans.get_student(db, student_id)
        inventory.get_book(db, book_id)
        req = models.BorrowRequest(student_id=student_id, book_id=book_id,
                                   status=models.RequestStatus.PENDING,
                                   requested_at=datetime.utcnow())
        db.add(req)
        db.flush()
        logger.info(f"Student {student_id} requested book {book_id} request {req.id}")
    db.refresh(req)
    return req


def _resolve(db: Session, request_id: int, status: str, loan_id: Optional[int] = None) -> None:
    # only a still-pending row may change; a concurrent resolver gets zero rows
    values = {models.BorrowRequest.status: status,
              models.BorrowRequest.resolved_at: datetime.utcnow()}
    if loan_id is not None:
        values[models.BorrowRequest.loan_id] = loan_id
    updated = (
        db.query(models.BorrowRequest)
        .filter(models.BorrowRequest.id == request_id,
                models.BorrowRequest.status == models.RequestStatus.PENDING)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        raise InvalidState(f"Borrow request {request_id} is no longer pending")


def _locked_pending(db: Session, request_id: int) -> models.BorrowRequest:
    req = (db.query(models.BorrowRequest)
           .filter(models.BorrowRequest.id == request_id)
           .with_for_update()
           .first())
    if not req:
        raise NotFound(f"Borrow request {request_id} not found")
    if req.status != models.RequestStatus.PENDING:
        logger.warning(f"Borrow request {request_id} is already {req.status}")
        raise InvalidState(f"Borrow request {request_id} is already {req.status}")
    return req


def approve(db: Session, request_id: int) -> models.BorrowRequest:
    """Reserve a copy, open a loan due in one loan period and mark the request approved.

    Everything commits together; on OutOfStock the request stays pending.
    """
    with transaction(db):
        req = _locked_pending(db, request_id)
        inventory.reserve_copy(db, req.book_id)
        now = datetime.utcnow()
        loan = loans.issue(db, req.book_id, req.student_id, now,
                           add_months(now, settings.loan_period_months))
        _resolve(db, request_id, models.RequestStatus.APPROVED, loan.id)
    db.refresh(req)
    logger.info(f"Borrow request {request_id} approved as loan {req.loan_id}")
    return req


def reject(db: Session, request_id: int) -> models.BorrowRequest:
    with transaction(db):
        req = _locked_pending(db, request_id)
        _resolve(db, request_id, models.RequestStatus.REJECTED)
    db.refresh(req)
    logger.info(f"Borrow request {request_id} rejected")
    return req


def list_requests(db: Session, status: Optional[str] = None,
                  student_id: Optional[int] = None) -> List[models.BorrowRequest]:
    query = db.query(models.BorrowRequest).options(joinedload(models.BorrowRequest.book),
                                                   joinedload(models.BorrowRequest.student))
    if status:
        query = query.filter(models.BorrowRequest.status == status)
    if student_id is not None:
        query = query.filter(models.BorrowRequest.student_id == student_id)
    return query.order_by(models.BorrowRequest.id.desc()).all()
