import os
import sqlite3

import pytest

from image_qc.database.schema import init_schema
from image_qc.database.ops import DBOperations
from image_qc.project_spec import ProjectSpec

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)

@pytest.fixture
def make_tool(tmp_path):
    """Writes an executable /bin/sh script standing in for an external tool."""
    def _make(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        os.chmod(path, 0o755)
        return str(path)
    return _make

@pytest.fixture
def basic_spec():
    return ProjectSpec.from_dict({
        'project': {'name': 'Test Project'},
        'format': {'file_type': 'JPEG', 'allowed_extensions': ['.jpg']},
        'dimensions': {'min_long_edge': 3000},
    })
