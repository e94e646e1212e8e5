from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import models


def dashboard_stats(db: Session) -> dict:
    """Read-only aggregate counts for the admin dashboard."""
    loan_count = lambda *conds: db.query(func.count(models.Loan.id)).filter(*conds).scalar()
    return {
        "total_books": db.query(func.count(models.Book.id)).scalar(),
        "total_copies": db.query(func.coalesce(func.sum(models.Book.total_copies), 0)).scalar(),
        "total_students": db.query(func.count(models.User.id))
                            .filter(models.User.role == models.Role.STUDENT).scalar(),
        "books_loaned": loan_count(models.Loan.status == models.LoanStatus.ISSUED),
        "books_returned": loan_count(models.Loan.status == models.LoanStatus.RETURNED),
        "overdue_books": loan_count(models.Loan.status == models.LoanStatus.ISSUED,
                                    models.Loan.return_date < datetime.utcnow()),
    }
