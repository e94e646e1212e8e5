from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional, Literal

from app.core.database import get_db, transaction
from app.core.errors import NotFound, ValidationError
from app.models import models
from app.schemas import schemas
from app.services import inventory, loans, borrow_requests, stats

router = APIRouter()

LoanStatusParam = Optional[Literal["issued", "returned"]]
RequestStatusParam = Optional[Literal["pending", "approved", "rejected"]]

# Books
@router.post("/books/", response_model=schemas.BookOut)
def create_book(book_in: schemas.BookCreate, db: Session = Depends(get_db)):
    with transaction(db):
        book = inventory.create_book(db, book_in.title, book_in.author,
                                     book_in.total_copies, book_in.genre)
    db.refresh(book)
    return book

@router.get("/books/", response_model=List[schemas.BookOut])
def list_books(skip: int = 0, limit: int = 20, db: Session = Depends(get_db)):
    return inventory.list_books(db, skip=skip, limit=limit)

@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    return inventory.get_book(db, book_id)

@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate, db: Session = Depends(get_db)):
    with transaction(db):
        book = inventory.update_book_details(db, book_id, book_upd.model_dump(exclude_unset=True))
    db.refresh(book)
    return book

@router.put("/books/{book_id}/copies", response_model=schemas.BookOut)
def resize_inventory(book_id: int, body: schemas.InventoryResize, db: Session = Depends(get_db)):
    with transaction(db):
        book = inventory.resize(db, book_id, body.total_copies)
    db.refresh(book)
    return book

@router.delete("/books/{book_id}")
def delete_book(book_id: int, db: Session = Depends(get_db)):
    with transaction(db):
        inventory.delete_book(db, book_id)
    return {"ok": True}

# Users
@router.post("/users/", response_model=schemas.UserOut)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.email == user_in.email).first()
    if existing:
        raise ValidationError("Email already registered")
    user = models.User(name=user_in.name.strip(), email=user_in.email.strip(),
                       role=user_in.role, student_number=user_in.student_number)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

@router.get("/users/{user_id}", response_model=schemas.UserOut)
def read_user(user_id: int, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user

@router.get("/users/", response_model=List[schemas.UserOut])
def list_users(skip: int = 0, limit: int = 50, db: Session = Depends(get_db)):
    return db.query(models.User).order_by(models.User.name).offset(skip).limit(limit).all()

# Borrow requests
@router.post("/requests/", response_model=schemas.BorrowRequestOut, status_code=201)
def submit_request(req_in: schemas.BorrowRequestIn, db: Session = Depends(get_db)):
    return borrow_requests.submit(db, req_in.student_id, req_in.book_id)

@router.get("/requests/", response_model=List[schemas.BorrowRequestOut])
def list_requests(status: RequestStatusParam = None, student_id: Optional[int] = None,
                  db: Session = Depends(get_db)):
    return borrow_requests.list_requests(db, status=status, student_id=student_id)

@router.post("/requests/{request_id}/approve", response_model=schemas.BorrowRequestOut)
def approve_request(request_id: int, db: Session = Depends(get_db)):
    return borrow_requests.approve(db, request_id)

@router.post("/requests/{request_id}/reject", response_model=schemas.BorrowRequestOut)
def reject_request(request_id: int, db: Session = Depends(get_db)):
    return borrow_requests.reject(db, request_id)

# Loans
@router.post("/loans/issue", response_model=schemas.LoanOut)
def issue_direct(issue_in: schemas.IssueIn, db: Session = Depends(get_db)):
    return loans.issue_direct(db, issue_in.book_id, issue_in.student_id, issue_in.due_date)

@router.post("/loans/return/{loan_id}", response_model=schemas.LoanOut)
def return_loan(loan_id: int, db: Session = Depends(get_db)):
    return loans.return_loan(db, loan_id)

@router.get("/loans/", response_model=List[schemas.LoanOut])
def list_loans(status: LoanStatusParam = None, overdue: Optional[bool] = None,
               student_id: Optional[int] = None, skip: int = 0, limit: int = 50,
               db: Session = Depends(get_db)):
    if student_id is not None:
        return loans.list_for_student(db, student_id, status=status, overdue=overdue,
                                      skip=skip, limit=limit)
    return loans.list_all(db, status=status, overdue=overdue, skip=skip, limit=limit)

@router.get("/students/{student_id}/loans", response_model=schemas.StudentLoansOut)
def student_loans(student_id: int, db: Session = Depends(get_db)):
    return loans.student_summary(db, student_id)

# Metrics
@router.get("/metrics", response_model=schemas.DashboardOut)
def metrics(db: Session = Depends(get_db)):
    return stats.dashboard_stats(db)
