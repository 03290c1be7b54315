"""
Shared fixtures: in-memory stand-ins for the repositories.

The fakes implement the same methods as the `repo_*` classes and mimic
their ordering rules (created_at, then id) so the services can be tested
without PostgreSQL. Timestamps come from a clock that ticks one second per
call, which keeps "oldest"/"newest" unambiguous.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from analysis_environment import StubLabeler
from models import Command, CommandStatus, Device, EnvironmentAnalysis, HeartRateAnalysis
from service_commands import CommandService
from service_devices import DeviceService
from service_environment import EnvironmentService
from service_telemetry import TelemetryService
from storage import LocalImageStore


class FakeClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FakeCommandRepo:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.commands: Dict[str, Command] = {}
        self._ids = itertools.count(1)

    def enqueue(self, device_id: str, command_type: str, payload: dict) -> Command:
        command = Command(
            id=f"cmd-{next(self._ids)}",
            device_id=device_id,
            type=command_type,
            payload=payload,
            status=CommandStatus.PENDING,
            created_at=self.clock.now(),
        )
        self.commands[command.id] = command
        return command

    def find_oldest_pending(self, device_id: str) -> Optional[Command]:
        pending = [
            c for c in self.commands.values()
            if c.device_id == device_id and c.status == CommandStatus.PENDING
        ]
        pending.sort(key=lambda c: (c.created_at, c.id))
        return pending[0] if pending else None

    def find_newest_running(self, device_id: str) -> Optional[Command]:
        running = [
            c for c in self.commands.values()
            if c.device_id == device_id and c.status == CommandStatus.RUNNING
        ]
        running.sort(key=lambda c: (c.started_at, c.id), reverse=True)
        return running[0] if running else None

    def mark_running(self, command_id: str) -> Optional[Command]:
        command = self.commands.get(command_id)
        if command is None or command.status != CommandStatus.PENDING:
            return None
        command = command.model_copy(
            update={"status": CommandStatus.RUNNING, "started_at": self.clock.now()}
        )
        self.commands[command_id] = command
        return command

    def mark_completed(self, command_id: str, device_id: str, result_ref: Optional[str]) -> Command:
        update = {
            "status": CommandStatus.COMPLETED,
            "completed_at": self.clock.now(),
            "result_ref": result_ref,
        }
        existing = self.commands.get(command_id)
        if existing is None:
            command = Command(id=command_id, device_id=device_id, created_at=self.clock.now(), **update)
        else:
            command = existing.model_copy(update=update)
        self.commands[command_id] = command
        return command


class FakeTelemetryRepo:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.readings: List[dict] = []
        self.analyses: List[HeartRateAnalysis] = []
        self._ids = itertools.count(1)

    def insert_reading(self, device_id: str, bpm: float, spo2: float) -> str:
        reading_id = str(next(self._ids))
        self.readings.append(
            {"id": reading_id, "device_id": device_id, "bpm": bpm, "spo2": spo2}
        )
        return reading_id

    def insert_analysis(self, analysis: HeartRateAnalysis) -> HeartRateAnalysis:
        stored = analysis.model_copy(
            update={"id": str(len(self.analyses) + 1), "created_at": self.clock.now()}
        )
        self.analyses.append(stored)
        return stored

    def latest_analysis(self, device_id: str) -> Optional[HeartRateAnalysis]:
        rows = self.recent_analyses(device_id, 1)
        return rows[0] if rows else None

    def recent_analyses(self, device_id: str, limit: int) -> List[HeartRateAnalysis]:
        rows = [a for a in self.analyses if a.device_id == device_id]
        rows.sort(key=lambda a: (a.created_at, int(a.id)), reverse=True)
        return rows[:limit]


class FakeEnvironmentRepo:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.analyses: Dict[str, EnvironmentAnalysis] = {}

    def insert_analysis(self, analysis: EnvironmentAnalysis) -> EnvironmentAnalysis:
        stored = analysis.model_copy(
            update={"id": str(len(self.analyses) + 1), "created_at": self.clock.now()}
        )
        self.analyses[stored.id] = stored
        return stored

    def link_command(self, analysis_id: str, command_id: str) -> None:
        self.analyses[analysis_id] = self.analyses[analysis_id].model_copy(
            update={"command_id": command_id}
        )

    def latest_analysis(self, device_id: str) -> Optional[EnvironmentAnalysis]:
        rows = [a for a in self.analyses.values() if a.device_id == device_id]
        rows.sort(key=lambda a: (a.created_at, int(a.id)), reverse=True)
        return rows[0] if rows else None


class FakeDeviceRepo:
    def __init__(self) -> None:
        self.devices: Dict[str, Device] = {}
        self.healthy = True

    def get(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    def upsert(self, device_id: str, token: str, enabled: bool = True) -> Device:
        self.devices[device_id] = Device(device_id=device_id, token=token, enabled=enabled)
        return self.devices[device_id]

    def ping(self) -> None:
        if not self.healthy:
            raise ConnectionError("database unreachable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def command_repo(clock: FakeClock) -> FakeCommandRepo:
    return FakeCommandRepo(clock)


@pytest.fixture
def telemetry_repo(clock: FakeClock) -> FakeTelemetryRepo:
    return FakeTelemetryRepo(clock)


@pytest.fixture
def environment_repo(clock: FakeClock) -> FakeEnvironmentRepo:
    return FakeEnvironmentRepo(clock)


@pytest.fixture
def device_repo() -> FakeDeviceRepo:
    repo = FakeDeviceRepo()
    repo.upsert("watch-1", "secret-1", enabled=True)
    repo.upsert("watch-off", "secret-off", enabled=False)
    return repo


@pytest.fixture
def command_svc(command_repo: FakeCommandRepo) -> CommandService:
    return CommandService(command_repo)


@pytest.fixture
def device_svc(device_repo: FakeDeviceRepo) -> DeviceService:
    return DeviceService(device_repo)


@pytest.fixture
def telemetry_svc(telemetry_repo, environment_repo) -> TelemetryService:
    return TelemetryService(telemetry_repo, environment_repo)


@pytest.fixture
def image_store(tmp_path) -> LocalImageStore:
    return LocalImageStore(str(tmp_path / "media"), "/media", "http://testserver")


@pytest.fixture
def environment_svc(environment_repo, image_store, command_svc) -> EnvironmentService:
    return EnvironmentService(
        environment_repo, image_store, StubLabeler(), command_svc, max_image_bytes=1024
    )
