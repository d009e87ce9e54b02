import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from incident_desk.api.deps import get_history_mirror, get_record_store, get_ticket_mirror, get_uploads_dir
from incident_desk.core.db import Base
from incident_desk.main import app
from incident_desk.mirror.csv_mirror import CsvMirror
from incident_desk.mirror.history_log import HistoryLog
from incident_desk.mirror.rows import HISTORY_COLUMNS, TICKET_COLUMNS
from incident_desk.services.identifiers import IdentifierGenerator
from incident_desk.services.tickets import TicketService
from incident_desk.store.record_store import RecordStore


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    # a SQLite file per test so stats workers on other threads see the same data
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def record_store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def offline_store(tmp_path):
    """A store whose database file can never be opened."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    try:
        yield RecordStore(sessionmaker(bind=engine))
    finally:
        engine.dispose()


@pytest.fixture
def uploads_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def ticket_mirror(tmp_path):
    return CsvMirror(tmp_path / "tickets.csv", TICKET_COLUMNS)


@pytest.fixture
def history_mirror(tmp_path):
    return CsvMirror(tmp_path / "ticket_history.csv", HISTORY_COLUMNS)


def build_service(store, ticket_mirror, history_mirror, uploads_dir):
    return TicketService(
        store,
        ticket_mirror,
        HistoryLog(store, history_mirror),
        IdentifierGenerator(store, ticket_mirror.path),
        uploads_dir,
    )


@pytest.fixture
def ticket_service(record_store, ticket_mirror, history_mirror, uploads_dir):
    return build_service(record_store, ticket_mirror, history_mirror, uploads_dir)


@pytest.fixture
def offline_service(offline_store, ticket_mirror, history_mirror, uploads_dir):
    return build_service(offline_store, ticket_mirror, history_mirror, uploads_dir)


def _client(store, ticket_mirror, history_mirror, uploads_dir):
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_ticket_mirror] = lambda: ticket_mirror
    app.dependency_overrides[get_history_mirror] = lambda: history_mirror
    app.dependency_overrides[get_uploads_dir] = lambda: uploads_dir
    return TestClient(app)


@pytest.fixture
def client(record_store, ticket_mirror, history_mirror, uploads_dir):
    yield _client(record_store, ticket_mirror, history_mirror, uploads_dir)
    app.dependency_overrides.clear()


@pytest.fixture
def offline_client(offline_store, ticket_mirror, history_mirror, uploads_dir):
    yield _client(offline_store, ticket_mirror, history_mirror, uploads_dir)
    app.dependency_overrides.clear()
