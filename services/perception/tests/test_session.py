"""Tests for DetectionSession: engine + tracker + host switches."""
from __future__ import annotations

import threading

import numpy as np
import pytest

from perception.errors import DETECTION_FAILED, INVALID_IMAGE, MODEL_LOADING_ERROR, DetectionError
from perception.geometry import Rectangle
from perception.session import DetectionSession, to_payload
from perception.tracker import Tracker
from perception.types import RawDetection


def det(left, top, width=100, height=100) -> RawDetection:
    return RawDetection(box=Rectangle(left, top, width, height), label="cup", confidence=0.8)


@pytest.fixture()
def session(registry) -> DetectionSession:
    return DetectionSession(registry, tracker=Tracker())


def test_starts_with_default_model(session):
    assert session.model_name == "Default Object Detector"
    assert session.tracking_enabled


def test_frames_get_stable_tracking_ids(session, frame):
    engine = session._engine
    engine.frames.extend([[det(0, 0), det(300, 0)], [det(305, 0), det(5, 5)]])

    first = session.process_frame(frame)
    second = session.process_frame(frame)

    assert [d.tracking_id for d in first.detections] == [1, 2]
    assert [d.tracking_id for d in second.detections] == [2, 1]
    assert not second.skipped
    assert second.processing_time_ms >= 0


def test_payload_wire_shape(session, frame):
    session._engine.frames.append([det(10, 20, 30, 40)])
    result = session.process_frame(frame)
    assert result.detections[0].to_wire() == {
        "label": "cup",
        "confidence": 0.8,
        "left": 10.0,
        "top": 20.0,
        "width": 30.0,
        "height": 40.0,
        "trackingId": 1,
    }


def test_unlabelled_detection_reports_unknown():
    payload = to_payload(RawDetection(box=Rectangle(0, 0, 1, 1)))
    assert payload.label == "Unknown"
    assert payload.confidence == 0.0
    assert "trackingId" not in payload.to_wire()


def test_tracking_disabled_passthrough(registry, frame):
    session = DetectionSession(registry, tracking_enabled=False)
    session._engine.frames.append([det(0, 0), det(300, 0)])

    result = session.process_frame(frame)

    assert [d.tracking_id for d in result.detections] == [None, None]
    assert all("trackingId" not in d.to_wire() for d in result.detections)
    assert len(session.tracker.registry) == 0


def test_reenabling_tracking_starts_fresh(session, frame):
    session._engine.frames.extend([[det(0, 0)], [det(0, 0)], [det(0, 0)]])
    session.process_frame(frame)

    session.set_tracking_enabled(False)
    session.process_frame(frame)
    session.set_tracking_enabled(True)
    result = session.process_frame(frame)

    # same object, but the tracker forgot it while disabled
    assert result.detections[0].tracking_id == 2


def test_enabling_twice_keeps_tracks(session, frame):
    session._engine.frames.extend([[det(0, 0)], [det(0, 0)]])
    session.process_frame(frame)
    session.set_tracking_enabled(True)
    assert session.process_frame(frame).detections[0].tracking_id == 1


def test_reset_tracking(session, frame):
    session._engine.frames.extend([[det(0, 0)], [det(0, 0)]])
    session.process_frame(frame)
    session.reset_tracking()
    assert session.process_frame(frame).detections[0].tracking_id == 2


def test_busy_session_skips_frame(session, frame):
    assert session._try_begin()
    try:
        result = session.process_frame(frame)
    finally:
        session._end()

    assert result.skipped
    assert result.detections == []
    assert result.processing_time_ms == 0
    assert session._engine.calls == 0


def test_frame_arriving_during_detection_is_skipped(registry, frame):
    session = DetectionSession(registry)
    engine = session._engine
    entered = threading.Event()
    release = threading.Event()

    def slow_detect(_frame):
        entered.set()
        release.wait(timeout=5)
        return [det(0, 0)]

    engine.detect = slow_detect
    results = []
    worker = threading.Thread(target=lambda: results.append(session.process_frame(frame)))
    worker.start()
    assert entered.wait(timeout=5)

    assert session.busy
    assert session.process_frame(frame).skipped

    release.set()
    worker.join(timeout=5)
    assert results[0].detections[0].tracking_id == 1
    assert not session.busy


def test_stop_clears_busy_flag(session, frame):
    session._try_begin()
    session.stop()
    assert not session.busy
    assert not session.process_frame(frame).skipped


@pytest.mark.parametrize(
    "bad",
    [np.zeros((4, 4), dtype=np.uint8), np.zeros((0, 4, 3), dtype=np.uint8), "not an image"],
)
def test_invalid_image(session, bad):
    with pytest.raises(DetectionError) as exc_info:
        session.process_frame(bad)
    assert exc_info.value.code == INVALID_IMAGE
    assert not session.busy


def test_engine_failure_is_detection_failed(session, frame):
    session._engine.error = RuntimeError("boom")
    with pytest.raises(DetectionError) as exc_info:
        session.process_frame(frame)
    assert exc_info.value.code == DETECTION_FAILED
    assert "boom" in exc_info.value.message
    assert not session.busy


def test_model_switch_resets_tracker(session, frame, models_dir):
    (models_dir / "object_labeler.pt").write_bytes(b"x")
    session._engine.frames.append([det(0, 0)])
    session.process_frame(frame)

    active = session.load_model("Custom Object Detector")

    assert active == "Custom Object Detector"
    assert session.model_name == "Custom Object Detector"
    assert len(session.tracker.registry) == 0
    session._engine.frames.append([det(0, 0)])
    assert session.process_frame(frame).detections[0].tracking_id == 2


def test_model_switch_falls_back_to_default(session):
    assert session.load_model("Custom Object Detector") == "Default Object Detector"


def test_failed_default_reload_keeps_current_engine(session, loader):
    before = session._engine
    loader.broken.add("Default Object Detector")
    with pytest.raises(DetectionError) as exc_info:
        session.load_model("Default Object Detector")
    assert exc_info.value.code == MODEL_LOADING_ERROR
    assert session._engine is before


def test_available_models(session):
    models = session.available_models()
    assert [m["name"] for m in models] == ["Default Object Detector", "Custom Object Detector"]
