import pytest

from laneorder.coordinator import MutationCoordinator
from laneorder.db import ProjectDatabase
from laneorder.errors import BoardError, TransportError
from laneorder.notify import Notifier
from laneorder.transport import LocalTransport


@pytest.fixture
def db(tmp_path):
    return ProjectDatabase(tmp_path / ".laneorder" / "board.db", timeout=5.0)


@pytest.fixture
def coordinator(db):
    return MutationCoordinator(db)


def seed(db, status, names):
    """Append projects to `status` in the given order and return them."""
    return [db.create_project(name, status=status) for name in names]


def layout(db, status):
    """Names of the projects in `status`, by position, with their orders."""
    return [(p.name, p.order) for p in db.list_projects(status=status)]


def orders_by_status(projects):
    groups = {}
    for p in projects:
        groups.setdefault(p.status, []).append(p.order)
    return {status: sorted(orders) for status, orders in groups.items()}


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages = []

    def success(self, kind, message):
        self.messages.append(("success", kind, message))

    def error(self, kind, message):
        self.messages.append(("error", kind, message))


class FlakyTransport(LocalTransport):
    """LocalTransport that fails the next mutation with a chosen error."""

    def __init__(self, coordinator):
        super().__init__(coordinator)
        self.fail_with: BoardError = None
        self.list_calls = 0

    async def list_projects(self):
        self.list_calls += 1
        return await super().list_projects()

    async def _mutate(self, fn, *args, **kwargs):
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error
        return await super()._mutate(fn, *args, **kwargs)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def transport(coordinator):
    return FlakyTransport(coordinator)


@pytest.fixture
def transport_error():
    return TransportError("connection reset")
