from __future__ import annotations

import pytest
from sample_models import TicketDB


@pytest.fixture
def db():
    """In-memory database (no backing files)."""
    return TicketDB()


@pytest.fixture
def paths(tmp_path):
    return {
        "objects_dir": tmp_path / "objects",
        "objects_file": tmp_path / "objects.db",
        "tracker_file": tmp_path / "tracker.db",
    }


@pytest.fixture
def disk_db(paths):
    """Database writing through to all three artifacts."""
    return TicketDB(**paths)
