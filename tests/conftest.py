"""
Test fixtures for the ganttsync test suite.

Provides:
- Temporary directory fixtures (isolated from the project's .ganttsync/)
- Mock data builders for creating test tasks
- Fake save functions and in-memory stores
- Log capture for loguru
"""

import asyncio
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generator, List, Optional

import pytest
from loguru import logger

from ganttsync.managers.collection import WorkingCollection
from ganttsync.models.base import Task
from ganttsync.store.memory import InMemoryRemoteStore

BASE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test isolation.

    Ensures tests don't modify the project's actual .ganttsync/ directory.
    """
    temp_path = Path(tempfile.mkdtemp(prefix="ganttsync_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def config_dir(temp_dir: Path) -> Path:
    """Create a temporary .ganttsync/ directory."""
    path = temp_dir / ".ganttsync"
    path.mkdir(parents=True)
    return path


# =============================================================================
# Mock Data Builders
# =============================================================================


class MockDataBuilder:
    """Helper class for building mock tasks for testing."""

    @staticmethod
    def create_task(
        id: str = "1",
        name: Optional[str] = None,
        start_offset: int = 0,
        duration: int = 5,
        progress: Optional[int] = None,
        position: int = 0,
        color: str = "#3b82f6",
        is_milestone: bool = False,
        project_id: Optional[str] = "p1",
    ) -> Task:
        """Create a mock Task starting ``start_offset`` days after BASE_DATE."""
        start = BASE_DATE + timedelta(days=start_offset)
        return Task(
            id=id,
            name=name or f"Task {id}",
            start_date=start,
            end_date=start + timedelta(days=duration),
            progress=progress,
            position=position,
            color=color,
            is_milestone=is_milestone,
            project_id=project_id,
        )

    def create_tasks(self, count: int) -> List[Task]:
        """Create ``count`` tasks with ids "1".."count"."""
        return [
            self.create_task(id=str(i), start_offset=i, position=i)
            for i in range(1, count + 1)
        ]


@pytest.fixture
def mock_data() -> MockDataBuilder:
    """Provide mock data builder for test task creation."""
    return MockDataBuilder()


@pytest.fixture
def sample_tasks(mock_data: MockDataBuilder) -> List[Task]:
    """Three tasks with ids "1", "2", "3"."""
    return mock_data.create_tasks(3)


@pytest.fixture
def collection(sample_tasks: List[Task]) -> WorkingCollection:
    """A working collection holding the sample tasks."""
    return WorkingCollection(sample_tasks)


@pytest.fixture
def store(sample_tasks: List[Task]) -> InMemoryRemoteStore:
    """An in-memory store with project "p1" holding the sample tasks."""
    memory_store = InMemoryRemoteStore()
    memory_store.add_project("p1", sample_tasks, name="Sample Project")
    return memory_store


# =============================================================================
# Fake Save Functions
# =============================================================================


class FakeSaver:
    """Async save function recording payloads and failing on demand."""

    def __init__(self, fail_times: int = 0, error: Optional[Exception] = None) -> None:
        self.fail_times = fail_times
        self.error = error or ConnectionError("network down")
        self.payloads: List[Any] = []
        self.attempt_times: List[float] = []

    async def __call__(self, payload: Any) -> None:
        self.payloads.append(payload)
        self.attempt_times.append(asyncio.get_running_loop().time())
        if self.fail_times:
            self.fail_times -= 1
            raise self.error

    @property
    def calls(self) -> int:
        return len(self.payloads)


@pytest.fixture
def saver() -> FakeSaver:
    """A save function that always succeeds."""
    return FakeSaver()


@pytest.fixture
def make_saver():
    """Factory for save functions that fail a given number of times."""
    return FakeSaver


# =============================================================================
# Log Capture
# =============================================================================


@pytest.fixture
def log_messages() -> Generator[List[str], None, None]:
    """Collect loguru messages emitted during a test."""
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)
