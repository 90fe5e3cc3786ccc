"""Shared fixtures: store-level scenarios run against both store implementations."""

from datetime import time

import pytest

from appointment_system import (
    InMemoryStore,
    SqlAlchemyStore,
    create_database_engine,
    create_session_factory,
    init_db,
)


@pytest.fixture
def sql_store(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'appointments.db'}", busy_timeout=10.0)
    init_db(engine)
    yield SqlAlchemyStore(create_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryStore()
    return request.getfixturevalue("sql_store")


@pytest.fixture
def doctor(store):
    return store.add_doctor(
        name="Dr. Alice Moreau",
        specialization="General Practice",
        working_start=time(9, 0),
        working_end=time(10, 0),
    )
