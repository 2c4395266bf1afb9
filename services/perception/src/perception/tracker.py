"""Cross-frame IoU tracker.

Gives every detection of a frame a track id that stays the same for the
same physical object from one frame to the next:

- If no track is alive, every detection gets a fresh id, in input order.
- Otherwise each detection, in input order, takes the id of the live track
  it overlaps most, provided that IoU is strictly above ``match_threshold``.
  Equal scores keep the lower id. A detection with no such track gets a
  fresh id.
- A track that was neither matched nor created during a frame is retired
  before that frame's call returns. Retired ids are never handed out again.

Matching is greedy in input order, not globally optimal. With
``exclusive_matching`` (the default) a track claimed by one detection is
out of the running for the rest of the frame. Turning it off reproduces the
older behaviour: several detections may share one track id in the same
frame (the last of them overwrites the stored box), and a track created on
the warm path survives the frame only if a later detection matches it.

The tracker is plain single-owner state: no locking, no I/O. Callers that
touch it from more than one thread must serialize ``assign`` and ``reset``.
"""
from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from vision_shared.logging import get_logger

from perception.geometry import Rectangle, iou
from perception.types import RawDetection

log = get_logger(__name__)


@dataclass(frozen=True)
class TrackerConfig:
    match_threshold: float = 0.5
    exclusive_matching: bool = True


@dataclass
class Track:
    """Last detection seen for one tracked object."""

    track_id: int
    detection: RawDetection

    @property
    def box(self) -> Rectangle:
        return self.detection.box


@dataclass(frozen=True)
class IdentifiedDetection:
    """A RawDetection with the track id assigned to it for this frame."""

    detection: RawDetection
    track_id: int


class TrackRegistry:
    """Live tracks keyed by id, iterated in ascending id order.

    Ids are only ever added in increasing order and never re-added, so the
    insertion order of the backing dict is the id order.
    """

    def __init__(self) -> None:
        self._tracks: dict[int, Track] = {}

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks

    def __iter__(self) -> Iterator[Track]:
        return iter(list(self._tracks.values()))

    def get(self, track_id: int) -> Track | None:
        return self._tracks.get(track_id)

    def ids(self) -> list[int]:
        return list(self._tracks)

    def add(self, track: Track) -> None:
        if self._tracks and track.track_id <= next(reversed(self._tracks)):
            raise ValueError(
                f"track id {track.track_id} is not above the newest live id"
            )
        self._tracks[track.track_id] = track

    def update(self, track_id: int, detection: RawDetection) -> None:
        self._tracks[track_id].detection = detection

    def retain(self, keep: set[int]) -> list[int]:
        """Drop every track whose id is not in ``keep``; return the dropped ids."""
        dropped = [tid for tid in self._tracks if tid not in keep]
        for tid in dropped:
            del self._tracks[tid]
        return dropped

    def clear(self) -> None:
        self._tracks.clear()


class Tracker:
    """Assigns stable track ids to per-frame detections.

    Usage:
        tracker = Tracker()
        for detections in frames:
            identified = tracker.assign(detections)

        # tracking switched off and on again, or model changed
        tracker.reset()
    """

    def __init__(self, config: TrackerConfig | None = None) -> None:
        self._cfg = config or TrackerConfig()
        self._registry = TrackRegistry()
        self._next_id = 1

    @property
    def config(self) -> TrackerConfig:
        return self._cfg

    @property
    def registry(self) -> TrackRegistry:
        return self._registry

    @property
    def next_id(self) -> int:
        return self._next_id

    def assign(self, detections: Sequence[RawDetection]) -> list[IdentifiedDetection]:
        """Assign a track id to each detection and update the live tracks.

        Args:
            detections: This frame's detections, in engine order. May be empty.
        Returns:
            One IdentifiedDetection per input, in the same order.
        """
        if not self._registry:
            fresh = [self._create(det) for det in detections]
            log.debug("tracker_cold_start", created=len(fresh), next_id=self._next_id)
            return fresh

        identified: list[IdentifiedDetection] = []
        # ids that survive the frame; everything else is retired
        claimed: set[int] = set()
        n_matched = 0

        for det in detections:
            track_id = self._best_match(det, claimed)
            if track_id is None:
                out = self._create(det)
            else:
                self._registry.update(track_id, det)
                out = IdentifiedDetection(detection=det, track_id=track_id)
                n_matched += 1
            if track_id is not None or self._cfg.exclusive_matching:
                claimed.add(out.track_id)
            identified.append(out)

        retired = self._registry.retain(claimed)
        log.debug(
            "tracker_frame",
            detections=len(detections),
            matched=n_matched,
            created=len(detections) - n_matched,
            retired=retired,
            live=len(self._registry),
        )
        return identified

    def reset(self) -> None:
        """Forget all live tracks. Id allocation carries on where it was."""
        dropped = len(self._registry)
        self._registry.clear()
        log.info("tracker_reset", dropped=dropped, next_id=self._next_id)

    def _best_match(self, det: RawDetection, claimed: set[int]) -> int | None:
        best_id: int | None = None
        best_score = self._cfg.match_threshold
        for track in self._registry:
            if self._cfg.exclusive_matching and track.track_id in claimed:
                continue
            score = iou(det.box, track.box)
            if score > best_score:
                best_score = score
                best_id = track.track_id
        return best_id

    def _create(self, det: RawDetection) -> IdentifiedDetection:
        track_id = self._next_id
        self._next_id += 1
        self._registry.add(Track(track_id=track_id, detection=det))
        return IdentifiedDetection(detection=det, track_id=track_id)
