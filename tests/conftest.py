#!/usr/bin/env python3
"""Shared pytest fixtures for boq-lite test suite."""

import pytest
import pathlib
import queue
import sys
import threading
from typing import Callable, List, Tuple

# Add parent directory to path for imports
sys.path.insert(0, str(pathlib.Path(__file__).parent.parent))

from tests.fixtures.generate_test_data import (
    FIXTURE_DIR,
    generate_boq_json,
    generate_corrupted_boq,
    generate_truncated_boq,
)


# ============================================================================
# File Fixtures
# ============================================================================

@pytest.fixture
def boq_stops_file() -> pathlib.Path:
    """Realistic dump: 3 S2 keys holding 2, 1 and 3 POIs."""
    return FIXTURE_DIR / "boq_stops.json"


@pytest.fixture
def two_cells_file() -> pathlib.Path:
    """Exactly two top-level keys with one POI each."""
    return FIXTURE_DIR / "boq_two_cells.json"


@pytest.fixture
def bad_coords_file() -> pathlib.Path:
    """Two cells; the first POI has a single coordinate."""
    return FIXTURE_DIR / "boq_bad_coords.json"


@pytest.fixture
def three_files(tmp_path) -> List[pathlib.Path]:
    """Three generated dumps with 4, 5 and 6 cells of 3 POIs each."""
    paths = []
    start = 0
    for i, cells in enumerate((4, 5, 6)):
        path = tmp_path / f"boq_{i}.json"
        generate_boq_json(cells, 3, str(path), start=start)
        start += cells * 3
        paths.append(path)
    return paths


@pytest.fixture
def corrupted_second_of_three(tmp_path) -> List[pathlib.Path]:
    """File 2 of 3 has invalid JSON in its third array."""
    first = tmp_path / "first.json"
    second = tmp_path / "second.json"
    third = tmp_path / "third.json"
    generate_boq_json(4, 2, str(first))
    generate_corrupted_boq(5, 2, str(second))
    generate_boq_json(4, 2, str(third))
    return [first, second, third]


@pytest.fixture
def truncated_file(tmp_path) -> pathlib.Path:
    """Dump that ends in the middle of its fourth array."""
    path = tmp_path / "truncated.json"
    generate_truncated_boq(6, 3, str(path))
    return path


@pytest.fixture
def large_boq_file(tmp_path) -> pathlib.Path:
    """About 2000 cells of 10 POIs."""
    path = tmp_path / "large.json"
    generate_boq_json(2000, 10, str(path))
    return path


# ============================================================================
# Pipeline Fixtures
# ============================================================================

@pytest.fixture
def run_boq() -> Callable:
    """
    Run a BOQDB in a thread and drain its queue like the CLI does.

    Returns a function ``(files, capacity=4, cancel=None) -> (cells, db)``.
    The thread is joined with a timeout so a broken completion protocol
    fails the test instead of hanging it.
    """
    from geodex.boq import BOQDB, END

    def _run(files, capacity=4, cancel=None) -> Tuple[list, "BOQDB"]:
        output = queue.Queue(maxsize=capacity)
        db = BOQDB([str(f) for f in files], output, cancel or threading.Event())
        thread = threading.Thread(target=db.run, daemon=True)
        thread.start()
        cells = []
        while True:
            item = output.get(timeout=10)
            if item is END:
                break
            cells.append(item)
        thread.join(timeout=10)
        assert not thread.is_alive()
        return cells, db

    return _run


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def fastapi_client():
    """Create a FastAPI test client for the POI service."""
    from fastapi.testclient import TestClient
    from poi_service.main import app

    return TestClient(app)


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")
    config.addinivalue_line("markers", "benchmark: marks benchmark tests")
