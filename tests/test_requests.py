import threading
from datetime import datetime

import pytest

from app.core.errors import NotFound, OutOfStock, InvalidState
from app.models import models
from app.services import borrow_requests, loans


def test_submit_does_not_check_stock(db, make_book, make_student):
    book_id = make_book(total=1, available=0)
    req = borrow_requests.submit(db, make_student(), book_id)
    assert req.status == models.RequestStatus.PENDING
    assert req.requested_at is not None
    assert req.loan_id is None


def test_submit_unknown_book_or_student(db, make_book, make_student):
    with pytest.raises(NotFound):
        borrow_requests.submit(db, make_student(), 999)
    with pytest.raises(NotFound):
        borrow_requests.submit(db, 999, make_book())
    assert db.query(models.BorrowRequest).count() == 0


def test_approve_issues_loan_due_in_a_month(db, make_book, make_student, fetch_book):
    book_id = make_book(total=2)
    student_id = make_student()
    req = borrow_requests.submit(db, student_id, book_id)

    approved = borrow_requests.approve(db, req.id)

    assert approved.status == models.RequestStatus.APPROVED
    assert approved.resolved_at is not None
    loan = db.query(models.Loan).filter(models.Loan.id == approved.loan_id).one()
    assert loan.status == models.LoanStatus.ISSUED
    assert (loan.book_id, loan.student_id) == (book_id, student_id)
    assert loan.return_date == borrow_requests.add_months(loan.issued_at, 1)
    assert fetch_book(book_id).available_copies == 1


def test_approve_twice_is_refused(db, make_book, make_student, fetch_book):
    book_id = make_book(total=3)
    req = borrow_requests.submit(db, make_student(), book_id)
    borrow_requests.approve(db, req.id)
    with pytest.raises(InvalidState):
        borrow_requests.approve(db, req.id)
    assert db.query(models.Loan).count() == 1
    assert fetch_book(book_id).available_copies == 2


def test_approve_out_of_stock_keeps_request_pending(db, make_book, make_student):
    book_id = make_book(total=1, available=0)
    req = borrow_requests.submit(db, make_student(), book_id)
    with pytest.raises(OutOfStock):
        borrow_requests.approve(db, req.id)
    db.expire_all()
    assert borrow_requests.get_request(db, req.id).status == models.RequestStatus.PENDING
    assert db.query(models.Loan).count() == 0


def test_approve_rolls_back_when_loan_insert_fails(db, make_book, make_student, fetch_book, monkeypatch):
    book_id = make_book(total=1)
    req = borrow_requests.submit(db, make_student(), book_id)

    def failing_issue(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(loans, "issue", failing_issue)
    with pytest.raises(RuntimeError):
        borrow_requests.approve(db, req.id)

    db.expire_all()
    assert fetch_book(book_id).available_copies == 1
    assert borrow_requests.get_request(db, req.id).status == models.RequestStatus.PENDING


def test_reject_then_approve_is_refused(db, make_book, make_student, fetch_book):
    book_id = make_book(total=1)
    req = borrow_requests.submit(db, make_student(), book_id)
    rejected = borrow_requests.reject(db, req.id)
    assert rejected.status == models.RequestStatus.REJECTED
    assert rejected.resolved_at is not None

    with pytest.raises(InvalidState):
        borrow_requests.approve(db, req.id)
    with pytest.raises(InvalidState):
        borrow_requests.reject(db, req.id)
    assert fetch_book(book_id).available_copies == 1


def test_approve_then_reject_is_refused(db, make_book, make_student):
    req = borrow_requests.submit(db, make_student(), make_book())
    borrow_requests.approve(db, req.id)
    with pytest.raises(InvalidState):
        borrow_requests.reject(db, req.id)
    db.expire_all()
    assert borrow_requests.get_request(db, req.id).status == models.RequestStatus.APPROVED


def test_resolving_unknown_request(db):
    with pytest.raises(NotFound):
        borrow_requests.approve(db, 10)
    with pytest.raises(NotFound):
        borrow_requests.reject(db, 10)


def test_list_requests_filters_and_orders(db, make_book, make_student):
    book_id = make_book(total=2)
    ada, bob = make_student("Ada"), make_student("Bob")
    first = borrow_requests.submit(db, ada, book_id)
    second = borrow_requests.submit(db, bob, book_id)
    third = borrow_requests.submit(db, ada, book_id)
    borrow_requests.reject(db, second.id)

    assert [r.id for r in borrow_requests.list_requests(db)] == [third.id, second.id, first.id]
    assert [r.id for r in borrow_requests.list_requests(db, status="pending")] == [third.id, first.id]
    assert [r.id for r in borrow_requests.list_requests(db, student_id=bob)] == [second.id]


def test_end_to_end_last_copy(db, make_book, make_student, fetch_book):
    book_id = make_book(total=1)
    ada, bob = make_student("Ada"), make_student("Bob")
    first = borrow_requests.submit(db, ada, book_id)
    second = borrow_requests.submit(db, bob, book_id)

    approved = borrow_requests.approve(db, first.id)
    assert fetch_book(book_id).available_copies == 0
    loan = db.query(models.Loan).filter(models.Loan.id == approved.loan_id).one()
    assert loan.status == models.LoanStatus.ISSUED
    assert approved.status == models.RequestStatus.APPROVED

    with pytest.raises(OutOfStock):
        borrow_requests.approve(db, second.id)
    db.expire_all()
    assert borrow_requests.get_request(db, second.id).status == models.RequestStatus.PENDING

    returned = loans.return_loan(db, loan.id)
    assert returned.status == models.LoanStatus.RETURNED
    assert fetch_book(book_id).available_copies == 1

    # the retried approval now goes through
    assert borrow_requests.approve(db, second.id).status == models.RequestStatus.APPROVED


@pytest.mark.parametrize("start, months, expected", [
    (datetime(2024, 1, 15, 9, 30), 1, datetime(2024, 2, 15, 9, 30)),
    (datetime(2024, 1, 31), 1, datetime(2024, 2, 29)),
    (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
    (datetime(2024, 12, 5), 1, datetime(2025, 1, 5)),
    (datetime(2024, 11, 30), 3, datetime(2025, 2, 28)),
])
def test_add_months(start, months, expected):
    assert borrow_requests.add_months(start, months) == expected


def test_concurrent_approvals_commit_once(db, session_factory, make_book, make_student, fetch_book):
    book_id = make_book(total=3)
    request_id = borrow_requests.submit(db, make_student(), book_id).id
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        session = session_factory()
        try:
            barrier.wait()
            borrow_requests.approve(session, request_id)
            result = "ok"
        except InvalidState:
            result = "invalid_state"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ["invalid_state", "ok"]
    assert db.query(models.Loan).count() == 1
    assert fetch_book(book_id).available_copies == 2
