from __future__ import annotations

import csv
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest

from envsense.config.runtime import ServiceConfig
from envsense.core.events import NullObserver
from envsense.core.models import (
    MalformedRequestError,
    ResultKind,
    Sample,
    SampleValidationError,
    SessionMeta,
    SessionStatus,
)
from envsense.service import SessionManager

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _sample(session_id: str = "s1", **changes) -> Sample:
    base = Sample(
        session_id=session_id,
        timestamp=NOW,
        volume=2.0,
        light_level=120.0,
        temp_dht=22.0,
        pressure=1000.0,
        temp_bmp=22.5,
        humidity=40.0,
        air_quality=30.0,
        co=0.2,
        no2=0.1,
    )
    return replace(base, **changes)


def _manager(tmp_path: Path, **kwargs) -> SessionManager:
    config = ServiceConfig(storage_root=tmp_path / "sessions", fsync=False)
    return SessionManager(config, clock=lambda: NOW, **kwargs)


def _data_rows(path: Path) -> list[list[str]]:
    with path.open("r", newline="", encoding="utf-8") as fh:
        return list(csv.reader(fh))[1:]


def _session_dir(manager: SessionManager, session_id: str = "s1") -> Path:
    return manager.config.storage_root / session_id


class _Recorder(NullObserver):
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_session_started(self, session_id: str) -> None:
        self.events.append(("started", session_id))

    def on_sample_received(self, session_id: str, sample: Sample) -> None:
        self.events.append(("sample", session_id, sample.pressure))

    def on_warning_raised(self, session_id: str, message: str) -> None:
        self.events.append(("warning", session_id, message.split(":")[0]))

    def on_session_completed(self, session_id: str) -> None:
        self.events.append(("completed", session_id))


# ---------------------------------------------------------------- start/end


def test_start_creates_session_files(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    result = manager.start_session(SessionMeta(session_id="s1", start_time=NOW, pressure=1000.0))
    assert result.success
    assert result.status is SessionStatus.IN_PROGRESS
    assert result.kind is ResultKind.OK
    session_dir = _session_dir(manager)
    assert (session_dir / "measurements_session.csv").read_text(encoding="utf-8").startswith("SessionId,Timestamp,")
    assert (session_dir / "rejects.csv").read_text(encoding="utf-8").rstrip().endswith(",Warnings")
    assert manager.open_session_ids() == ["s1"]


def test_double_start_leaves_existing_session_alone(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    manager.push_sample(_sample())
    measurements = _session_dir(manager) / "measurements_session.csv"
    before = measurements.read_bytes()

    result = manager.start_session(SessionMeta(session_id="s1"))
    assert not result.success
    assert result.status is SessionStatus.IN_PROGRESS
    assert result.kind is ResultKind.ALREADY_EXISTS
    assert not result.is_fault
    assert measurements.read_bytes() == before
    assert manager.push_sample(_sample(pressure=1000.5)).success


def test_start_faults(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    assert manager.start_session(None).kind is ResultKind.MALFORMED
    assert manager.start_session(SessionMeta(session_id="")).kind is ResultKind.MALFORMED

    unsafe = manager.start_session(SessionMeta(session_id="../escape"))
    assert unsafe.kind is ResultKind.VALIDATION
    assert unsafe.field_name == "session_id"
    assert not (tmp_path / "escape").exists()

    with pytest.raises(MalformedRequestError):
        manager.start_session(None).raise_for_fault()
    with pytest.raises(SampleValidationError):
        unsafe.raise_for_fault()


def test_end_twice_returns_not_found(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))

    first = manager.end_session("s1")
    assert first.success
    assert first.status is SessionStatus.COMPLETED

    second = manager.end_session("s1")
    assert not second.success
    assert second.kind is ResultKind.NOT_FOUND
    assert second.status is SessionStatus.COMPLETED
    second.raise_for_fault()
    assert manager.open_session_ids() == []


def test_end_unknown_session(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    assert manager.end_session("nope").kind is ResultKind.NOT_FOUND
    assert manager.end_session(None).kind is ResultKind.NOT_FOUND


def test_identifier_reusable_after_end(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    manager.push_sample(_sample())
    manager.end_session("s1")

    assert manager.start_session(SessionMeta(session_id="s1")).success
    assert manager.push_sample(_sample(pressure=1000.5)).success
    manager.end_session("s1")

    text = (_session_dir(manager) / "measurements_session.csv").read_text(encoding="utf-8")
    assert text.count("SessionId,Timestamp") == 1
    assert len(_data_rows(_session_dir(manager) / "measurements_session.csv")) == 2


def test_storage_root_failure_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(OSError):
        SessionManager(ServiceConfig(storage_root=blocker / "sessions"))


# --------------------------------------------------------------------- push


def test_valid_sample_is_accepted_once(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    result = manager.push_sample(_sample())
    assert result.success
    assert result.kind is ResultKind.OK
    assert result.status is SessionStatus.IN_PROGRESS

    rows = _data_rows(_session_dir(manager) / "measurements_session.csv")
    assert len(rows) == 1
    assert rows[0][0] == "s1"
    assert rows[0][5] == "1000.0"
    assert _data_rows(_session_dir(manager) / "rejects.csv") == []


@pytest.mark.parametrize(
    "changes, field_name",
    [
        ({"humidity": 120.0}, "humidity"),
        ({"pressure": 0.0}, "pressure"),
        ({"pressure": float("nan")}, "pressure"),
        ({"temp_bmp": -60.0}, "temp_bmp"),
        ({"timestamp": NOW + timedelta(days=2)}, "timestamp"),
        ({"timestamp": datetime.min}, "timestamp"),
        ({"volume": 10**400}, "volume"),
    ],
)
def test_invalid_sample_has_no_side_effects(tmp_path: Path, changes, field_name) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    result = manager.push_sample(_sample(**changes))
    assert result.kind is ResultKind.VALIDATION
    assert result.is_fault
    assert result.field_name == field_name
    assert manager.store.get("s1").analyzer.statistics.pressure_count == 0
    assert _data_rows(_session_dir(manager) / "measurements_session.csv") == []
    assert _data_rows(_session_dir(manager) / "rejects.csv") == []


def test_malformed_sample(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    assert manager.push_sample(None).kind is ResultKind.MALFORMED
    assert manager.push_sample(_sample(session_id="")).kind is ResultKind.MALFORMED
    assert manager.push_sample(_sample(volume="3")).kind is ResultKind.MALFORMED


def test_push_to_unknown_session(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    result = manager.push_sample(_sample(session_id="ghost"))
    assert not result.success
    assert not result.is_fault
    assert result.kind is ResultKind.NOT_FOUND
    assert result.status is SessionStatus.IN_PROGRESS
    assert not (manager.config.storage_root / "ghost").exists()


def test_push_after_end_is_not_found(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    manager.end_session("s1")
    assert manager.push_sample(_sample()).kind is ResultKind.NOT_FOUND


def test_flagged_sample_goes_only_to_rejects(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    assert manager.push_sample(_sample(pressure=100.0)).success

    result = manager.push_sample(_sample(pressure=105.0))
    assert not result.success
    assert result.kind is ResultKind.ANOMALY
    assert "PressureSpike: |ΔP|=5.00 > 2.0 (above expected)" in result.message

    accepted = _data_rows(_session_dir(manager) / "measurements_session.csv")
    rejected = _data_rows(_session_dir(manager) / "rejects.csv")
    assert [row[5] for row in accepted] == ["100.0"]
    assert len(rejected) == 1
    assert rejected[0][5] == "105.0"
    assert rejected[0][-1].startswith("PressureSpike")

    # the session stays usable
    assert manager.push_sample(_sample(pressure=104.0)).success


def test_internal_failure_is_recorded_and_session_stays_open(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    session = manager.store.get("s1")
    real_process = session.analyzer.process

    def _boom(sample):
        raise RuntimeError("analyzer exploded")

    session.analyzer.process = _boom
    result = manager.push_sample(_sample())
    assert not result.success
    assert not result.is_fault
    assert result.kind is ResultKind.INTERNAL_ERROR
    assert "analyzer exploded" in result.message

    rejected = _data_rows(_session_dir(manager) / "rejects.csv")
    assert rejected[0][-1] == "InternalError: analyzer exploded"

    session.analyzer.process = real_process
    assert manager.push_sample(_sample()).success


# ------------------------------------------------------------ notifications


def test_observer_event_order(tmp_path: Path) -> None:
    recorder = _Recorder()
    manager = _manager(tmp_path, observers=[recorder])
    manager.start_session(SessionMeta(session_id="s1"))
    manager.push_sample(_sample(pressure=100.0))
    manager.push_sample(_sample(pressure=105.0))
    manager.end_session("s1")
    manager.end_session("s1")

    assert recorder.events == [
        ("started", "s1"),
        ("sample", "s1", 100.0),
        ("warning", "s1", "PressureSpike"),
        ("completed", "s1"),
    ]


def test_failing_observer_does_not_change_results(tmp_path: Path) -> None:
    class _Broken(NullObserver):
        def on_sample_received(self, session_id, sample):
            raise RuntimeError("observer bug")

    recorder = _Recorder()
    manager = _manager(tmp_path, observers=[_Broken()])
    manager.events.subscribe(recorder)
    manager.start_session(SessionMeta(session_id="s1"))
    assert manager.push_sample(_sample()).success
    assert ("sample", "s1", 1000.0) in recorder.events
    assert _data_rows(_session_dir(manager) / "rejects.csv") == []


def test_observer_can_end_session_from_warning(tmp_path: Path) -> None:
    class _EndOnWarning(NullObserver):
        def __init__(self) -> None:
            self.end_results = []

        def on_warning_raised(self, session_id, message):
            self.end_results.append(manager.end_session(session_id))

    observer = _EndOnWarning()
    manager = _manager(tmp_path, observers=[observer])
    manager.start_session(SessionMeta(session_id="s1"))
    manager.push_sample(_sample(pressure=100.0))

    results = []
    pusher = threading.Thread(target=lambda: results.append(manager.push_sample(_sample(pressure=105.0))))
    pusher.start()
    pusher.join(timeout=5.0)

    assert not pusher.is_alive()
    assert results[0].kind is ResultKind.ANOMALY
    assert [r.kind for r in observer.end_results] == [ResultKind.OK]
    assert manager.open_session_ids() == []
    assert len(_data_rows(_session_dir(manager) / "rejects.csv")) == 1
    assert manager.push_sample(_sample()).kind is ResultKind.NOT_FOUND


def test_observer_can_push_when_session_starts(tmp_path: Path) -> None:
    class _PushOnStart(NullObserver):
        def __init__(self) -> None:
            self.push_results = []

        def on_session_started(self, session_id):
            self.push_results.append(manager.push_sample(_sample(session_id)))

    observer = _PushOnStart()
    manager = _manager(tmp_path, observers=[observer])
    assert manager.start_session(SessionMeta(session_id="s1")).success
    assert [r.kind for r in observer.push_results] == [ResultKind.OK]
    assert len(_data_rows(_session_dir(manager) / "measurements_session.csv")) == 1


# -------------------------------------------------------------- concurrency


def test_concurrent_pushes_keep_running_mean_consistent(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    workers, per_worker = 8, 40
    pressures = [1000.0 + ((w * per_worker + i) % 7) * 0.25 for w in range(workers) for i in range(per_worker)]
    results = []
    results_lock = threading.Lock()

    def _push(chunk):
        for pressure in chunk:
            result = manager.push_sample(_sample(pressure=pressure))
            with results_lock:
                results.append(result)

    threads = [
        threading.Thread(target=_push, args=(pressures[w * per_worker:(w + 1) * per_worker],))
        for w in range(workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30.0)

    stats = manager.store.get("s1").analyzer.statistics
    assert stats.pressure_count == len(pressures)
    np.testing.assert_allclose(stats.pressure_mean, np.mean(pressures), rtol=1e-9)

    accepted = _data_rows(_session_dir(manager) / "measurements_session.csv")
    rejected = _data_rows(_session_dir(manager) / "rejects.csv")
    assert len(accepted) == sum(r.success for r in results)
    assert len(accepted) + len(rejected) == len(pressures)


def test_concurrent_starts_have_one_winner(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    barrier = threading.Barrier(6)
    results = []

    def _start():
        barrier.wait(timeout=5.0)
        results.append(manager.start_session(SessionMeta(session_id="s1")))

    threads = [threading.Thread(target=_start) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert sum(r.success for r in results) == 1
    assert sum(r.kind is ResultKind.ALREADY_EXISTS for r in results) == 5


def test_push_racing_end_is_all_or_nothing(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    manager.start_session(SessionMeta(session_id="s1"))
    results = []
    results_lock = threading.Lock()
    start = threading.Barrier(5)

    def _push():
        start.wait(timeout=5.0)
        for _ in range(50):
            result = manager.push_sample(_sample())
            with results_lock:
                results.append(result)

    threads = [threading.Thread(target=_push) for _ in range(4)]
    for t in threads:
        t.start()
    start.wait(timeout=5.0)
    end_result = manager.end_session("s1")
    for t in threads:
        t.join(timeout=30.0)

    assert end_result.success
    assert {r.kind for r in results} <= {ResultKind.OK, ResultKind.NOT_FOUND}
    accepted = _data_rows(_session_dir(manager) / "measurements_session.csv")
    assert len(accepted) == sum(r.kind is ResultKind.OK for r in results)


def test_close_all_ends_open_sessions(tmp_path: Path) -> None:
    recorder = _Recorder()
    manager = _manager(tmp_path, observers=[recorder])
    for session_id in ("a", "b"):
        manager.start_session(SessionMeta(session_id=session_id))
    manager.close_all()
    assert manager.open_session_ids() == []
    assert sorted(e[1] for e in recorder.events if e[0] == "completed") == ["a", "b"]
