"""Engine setup derived from DATABASE_URL."""
from jobscan import database


def test_sqlite_url_gets_async_driver_and_no_pooler_settings():
    assert database.sync_engine.url.drivername == "sqlite"
    assert database.async_engine.url.drivername == "sqlite+aiosqlite"
    assert database.is_transaction_pooler is False
    assert database.async_connect_args == {}


def test_sync_db_dependency_closes_session():
    gen = database.get_sync_db()
    session = next(gen)
    assert session.bind is database.sync_engine
    gen.close()
