from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class Role:
    ADMIN = "admin"
    STUDENT = "student"


class LoanStatus:
    ISSUED = "issued"
    RETURNED = "returned"


class RequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="ck_books_total_non_negative"),
        CheckConstraint("available_copies >= 0 AND available_copies <= total_copies",
                        name="ck_books_available_in_range"),
    )
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    genre = Column(String, nullable=True, index=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    loans = relationship("Loan", back_populates="book", cascade="all, delete-orphan")
    requests = relationship("BorrowRequest", back_populates="book", cascade="all, delete-orphan")

Index('ix_books_title_author', Book.title, Book.author)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, default=Role.STUDENT)
    student_number = Column(String, nullable=True, index=True)
    joined_at = Column(DateTime, default=datetime.utcnow)
    loans = relationship("Loan", back_populates="student")
    requests = relationship("BorrowRequest", back_populates="student")


class Loan(Base):
    __tablename__ = "loans"
    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=LoanStatus.ISSUED, index=True)
    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    return_date = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)
    book = relationship("Book", back_populates="loans")
    student = relationship("User", back_populates="loans")

    def is_overdue(self, now=None):
        # computed on read, never stored
        now = now or datetime.utcnow()
        return (self.status == LoanStatus.ISSUED
                and self.return_date is not None
                and self.return_date < now)

    @property
    def overdue(self):
        return self.is_overdue()

    @property
    def book_title(self):
        return self.book.title

    @property
    def book_author(self):
        return self.book.author

    @property
    def book_genre(self):
        return self.book.genre

    @property
    def student_name(self):
        return self.student.name

    @property
    def student_number(self):
        return self.student.student_number


class BorrowRequest(Base):
    __tablename__ = "borrow_requests"
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=RequestStatus.PENDING, index=True)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)
    loan_id = Column(Integer, ForeignKey("loans.id", ondelete="SET NULL"), nullable=True)
    book = relationship("Book", back_populates="requests")
    student = relationship("User", back_populates="requests")
    loan = relationship("Loan")

    @property
    def book_title(self):
        return self.book.title

    @property
    def student_name(self):
        return self.student.name

    @property
    def student_number(self):
        return self.student.student_number
