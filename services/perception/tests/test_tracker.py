"""Unit tests for the cross-frame IoU tracker."""
from __future__ import annotations

import pytest

from perception.geometry import Rectangle
from perception.tracker import Track, Tracker, TrackerConfig, TrackRegistry
from perception.types import RawDetection


def det(left, top, width=100, height=100, label="cup", confidence=0.9) -> RawDetection:
    return RawDetection(
        box=Rectangle(left, top, width, height), label=label, confidence=confidence
    )


def ids(identified) -> list[int]:
    return [i.track_id for i in identified]


# ── Cold start ────────────────────────────────────────────────────────────────

def test_cold_start_numbers_detections_in_input_order():
    tracker = Tracker()
    out = tracker.assign([det(0, 0), det(200, 0), det(400, 0)])
    assert ids(out) == [1, 2, 3]
    assert tracker.registry.ids() == [1, 2, 3]
    assert tracker.next_id == 4


def test_output_preserves_detections():
    tracker = Tracker()
    inputs = [det(0, 0, label="a"), det(300, 0, label="b")]
    out = tracker.assign(inputs)
    assert [i.detection for i in out] == inputs


def test_empty_frame_on_cold_tracker():
    tracker = Tracker()
    assert tracker.assign([]) == []
    assert len(tracker.registry) == 0
    assert tracker.next_id == 1


# ── Matching ──────────────────────────────────────────────────────────────────

def test_small_shift_keeps_identity():
    tracker = Tracker()
    tracker.assign([det(0, 0)])
    out = tracker.assign([det(5, 5)])
    assert ids(out) == [1]
    assert tracker.registry.get(1).box == Rectangle(5, 5, 100, 100)


def test_large_shift_gets_new_id_and_old_track_retires():
    tracker = Tracker()
    tracker.assign([det(0, 0)])
    out = tracker.assign([det(60, 60)])
    assert ids(out) == [2]
    assert tracker.registry.ids() == [2]


def test_iou_exactly_at_threshold_is_not_a_match():
    tracker = Tracker()
    tracker.assign([det(0, 0, 100, 100)])
    # half the area, IoU == 0.5
    out = tracker.assign([det(0, 0, 50, 100)])
    assert ids(out) == [2]


def test_identity_follows_object_across_frames():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(500, 0)])
    for step in range(1, 6):
        out = tracker.assign([det(500 - 5 * step, 0), det(5 * step, 0)])
        assert ids(out) == [2, 1]


def test_equal_overlap_prefers_lower_id():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(20, 0)])
    out = tracker.assign([det(10, 0)])
    assert ids(out) == [1]
    assert tracker.registry.ids() == [1]


def test_best_overlap_wins_over_lower_id():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(30, 0)])
    out = tracker.assign([det(28, 0)])
    assert ids(out) == [2]


def test_custom_threshold():
    tracker = Tracker(TrackerConfig(match_threshold=0.05))
    tracker.assign([det(0, 0)])
    out = tracker.assign([det(60, 60)])
    assert ids(out) == [1]


# ── Retirement ────────────────────────────────────────────────────────────────

def test_unmatched_track_is_retired_and_never_reused():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(200, 0), det(400, 0)])

    out = tracker.assign([det(2, 0), det(202, 0)])
    assert ids(out) == [1, 2]
    assert tracker.registry.ids() == [1, 2]

    # object 3 comes back where it was, but its track is gone
    out = tracker.assign([det(2, 0), det(202, 0), det(400, 0)])
    assert ids(out) == [1, 2, 4]


def test_track_created_mid_stream_survives_the_frame():
    tracker = Tracker()
    tracker.assign([det(0, 0)])
    tracker.assign([det(0, 0), det(300, 0)])
    assert tracker.registry.ids() == [1, 2]

    out = tracker.assign([det(0, 0), det(300, 0)])
    assert ids(out) == [1, 2]


def test_empty_frame_retires_everything():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(300, 0)])
    assert tracker.assign([]) == []
    assert len(tracker.registry) == 0

    # next frame is a cold start, numbering continues
    out = tracker.assign([det(0, 0)])
    assert ids(out) == [3]


# ── Exclusive vs shared matching ──────────────────────────────────────────────

def test_exclusive_matching_gives_overlapping_detections_distinct_ids():
    tracker = Tracker()
    tracker.assign([det(0, 0)])
    out = tracker.assign([det(0, 0), det(2, 2)])
    assert ids(out) == [1, 2]
    assert tracker.registry.ids() == [1, 2]


def test_shared_matching_lets_two_detections_claim_one_track():
    tracker = Tracker(TrackerConfig(exclusive_matching=False))
    tracker.assign([det(0, 0)])
    out = tracker.assign([det(0, 0), det(2, 2)])
    assert ids(out) == [1, 1]
    # last claimant overwrites the stored box
    assert tracker.registry.get(1).box == Rectangle(2, 2, 100, 100)
    assert tracker.registry.ids() == [1]


def test_shared_matching_retires_tracks_created_mid_stream():
    tracker = Tracker(TrackerConfig(exclusive_matching=False))
    tracker.assign([det(0, 0)])

    out = tracker.assign([det(0, 0), det(500, 0)])

    assert ids(out) == [1, 2]
    assert tracker.registry.ids() == [1]
    # the object seen at 500 comes back under a fresh id
    assert ids(tracker.assign([det(0, 0), det(500, 0)])) == [1, 3]


def test_shared_matching_keeps_new_track_claimed_later_in_frame():
    tracker = Tracker(TrackerConfig(exclusive_matching=False))
    tracker.assign([det(0, 0)])

    out = tracker.assign([det(500, 0), det(502, 0)])

    assert ids(out) == [2, 2]
    assert tracker.registry.ids() == [2]


# ── Reset and id monotonicity ─────────────────────────────────────────────────

def test_reset_clears_tracks_but_not_numbering():
    tracker = Tracker()
    tracker.assign([det(0, 0), det(300, 0)])
    tracker.reset()
    assert len(tracker.registry) == 0
    assert tracker.next_id == 3

    out = tracker.assign([det(0, 0)])
    assert ids(out) == [3]


def test_ids_strictly_increase_over_a_long_run():
    tracker = Tracker()
    seen: list[int] = []
    for step in range(20):
        # every other frame jumps far enough to break identity
        offset = 0 if step % 2 == 0 else 150
        for tid in ids(tracker.assign([det(offset, 0)])):
            if tid not in seen:
                seen.append(tid)
        if step % 7 == 6:
            tracker.reset()
    assert seen == sorted(seen)
    assert len(seen) == len(set(seen))


# ── Degenerate boxes ──────────────────────────────────────────────────────────

def test_zero_area_detections_never_match():
    tracker = Tracker()
    tracker.assign([det(0, 0, 0, 0)])
    out = tracker.assign([det(0, 0, 0, 0)])
    assert ids(out) == [2]


def test_negative_size_box_is_tracked_without_error():
    tracker = Tracker()
    out = tracker.assign([det(10, 10, -5, 20), det(0, 0)])
    assert ids(out) == [1, 2]
    out = tracker.assign([det(10, 10, -5, 20), det(1, 1)])
    assert ids(out) == [3, 2]


def test_missing_label_and_confidence_are_carried_through():
    tracker = Tracker()
    raw = RawDetection(box=Rectangle(0, 0, 10, 10))
    out = tracker.assign([raw])
    assert out[0].detection.display_label == "Unknown"
    assert out[0].detection.score == 0.0


# ── Registry ──────────────────────────────────────────────────────────────────

def test_registry_rejects_out_of_order_ids():
    registry = TrackRegistry()
    registry.add(Track(track_id=5, detection=det(0, 0)))
    with pytest.raises(ValueError):
        registry.add(Track(track_id=3, detection=det(0, 0)))


def test_registry_retain_reports_dropped_ids():
    registry = TrackRegistry()
    for tid in (1, 2, 3):
        registry.add(Track(track_id=tid, detection=det(0, 0)))
    assert registry.retain({2}) == [1, 3]
    assert registry.ids() == [2]
    assert 2 in registry and 1 not in registry
