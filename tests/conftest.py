"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before and dropped
after every test, so no test data persists.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tuition_ledger.main import app
from tuition_ledger.models.base import Base, get_db
from tuition_ledger.schemas.invoice import GenerateInvoicesRequest
from tuition_ledger.schemas.student import StudentCreate
from tuition_ledger.services.invoice_service import InvoiceService
from tuition_ledger.services.student_service import StudentService


# SQLite needs no database server, so tests run anywhere.
# It ignores FOR UPDATE, which is fine for single-threaded tests.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def other_session():
    """
    A second, independent session, standing in for a concurrent
    request that loaded rows before the first one committed.
    """
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    The get_db dependency is overridden so the app uses the
    test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_student(db_session):
    """Factory: create and commit a student."""
    def _make(student_number="STU001", first_name="Thandi", last_name="Nkosi",
              is_active=True):
        student = StudentService(db_session).create_student(StudentCreate(
            student_number=student_number,
            first_name=first_name,
            last_name=last_name,
            is_active=is_active,
        ))
        db_session.commit()
        return student
    return _make


@pytest.fixture
def billed_student(db_session, make_student):
    """One active student with a 500.00 invoice for March 2025."""
    student = make_student("STU001")
    InvoiceService(db_session).generate_monthly_invoices(GenerateInvoicesRequest(
        month=3, year=2025, amount_due=Decimal("500.00"),
    ))
    db_session.commit()
    return student
