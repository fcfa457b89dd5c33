"""Unit-test conftest — DB isolation safety net.

Provides an ``autouse`` fixture that prevents any unit test from
accidentally opening a real Postgres connection. This catches the class
of bugs where ``create_app()`` or a repository is exercised without
overriding the database-backed dependency first.

The approach:
1. Before every unit test, reset the storage module's global engine and
   session-factory singletons so they start from scratch.
2. Monkey-patch ``get_engine()`` and friends to raise immediately if any
   code path attempts a real DB connection.

Tests that intentionally need DB access live in ``tests/integration/``
and are unaffected.
"""

from __future__ import annotations

import pytest

import src.storage as _storage_mod

_MESSAGE = (
    "Unit test attempted a real DB connection via {}(). "
    "Override the dependency or use tests/integration/ for DB tests."
)


def _install_db_guard(monkeypatch: pytest.MonkeyPatch | None = None) -> None:
    """Install guard functions that prevent real DB access in unit tests."""

    def _guarded_get_engine(settings=None):
        raise RuntimeError(_MESSAGE.format("get_engine"))

    def _guarded_get_session_factory(settings=None):
        raise RuntimeError(_MESSAGE.format("get_session_factory"))

    def _guarded_get_session():
        raise RuntimeError(_MESSAGE.format("get_session"))

    if monkeypatch:
        monkeypatch.setattr(_storage_mod, "get_engine", _guarded_get_engine)
        monkeypatch.setattr(_storage_mod, "get_session_factory", _guarded_get_session_factory)
        monkeypatch.setattr(_storage_mod, "get_session", _guarded_get_session)
    else:
        _storage_mod.get_engine = _guarded_get_engine
        _storage_mod.get_session_factory = _guarded_get_session_factory
        _storage_mod.get_session = _guarded_get_session


@pytest.fixture(autouse=True)
def _isolate_db(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent unit tests from reaching a real Postgres connection."""
    monkeypatch.setattr(_storage_mod, "_engine", None)
    monkeypatch.setattr(_storage_mod, "_session_factory", None)
    _install_db_guard(monkeypatch)
