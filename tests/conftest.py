# FILE: tests/conftest.py
"""
Pytest configuration for the Plutus Scan test suite.

Configures:
- pytest-asyncio for async test support
- in-memory SQLite sessions built from Base.metadata
- sample plutus.json documents
"""
import json
import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

pytest_plugins = ["pytest_asyncio"]

COMMIT = "35f1a0d2c0b8e4f6a7b9c1d3e5f7a9b1c3d5e7f9"
SOURCE_URL = "https://github.com/org/repo"


@pytest.fixture
def session_factory():
    """Session factory over one shared in-memory database."""
    from plutus_scan.db import Base
    from plutus_scan.verification import models  # noqa: F401

    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    """Create in-memory database for testing."""
    session = session_factory()
    yield session
    session.close()


def make_blueprint(validators, version="v1.1.3", plutus_version="v3"):
    return json.dumps({
        "preamble": {
            "title": "org/repo",
            "version": "0.0.0",
            "plutusVersion": plutus_version,
            "compiler": {"name": "Aiken", "version": version},
        },
        "validators": validators,
    })


@pytest.fixture
def simple_blueprint():
    """One parameterless validator titled mod.val.spend."""
    return make_blueprint([
        {"title": "mod.val.spend", "hash": "abc123", "compiledCode": "5901"},
    ])
