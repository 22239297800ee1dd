"""Tests for the database session factory."""
from sqlalchemy.ext.asyncio import AsyncSession

from db import session as db_session


def test__get_session_factory__shared_and_bound_to_engine() -> None:
    factory = db_session.get_session_factory()

    assert factory is db_session.get_session_factory()
    assert factory.kw['bind'] is db_session.engine
    assert factory.class_ is AsyncSession


def test__get_session_factory__objects_survive_commit() -> None:
    # Store methods return ORM rows after their session has committed and closed
    assert db_session.get_session_factory().kw['expire_on_commit'] is False


def test__session_module__exposes_only_the_factory() -> None:
    public = {name for name in vars(db_session) if name.startswith('get_')}
    assert public == {'get_session_factory', 'get_settings'}
