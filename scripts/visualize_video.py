#!/usr/bin/env python3
"""Visualize object detection and tracking ids on a video file.

Runs every frame through the same DetectionSession the perception service
uses (model registry, engine, IoU tracker) and draws each box with its
label and tracking id. A box keeps its colour for as long as its id lives,
so identity switches are easy to spot.

Usage:
    python scripts/visualize_video.py input.mp4 output_annotated.mp4

    # Or show live (requires display):
    python scripts/visualize_video.py input.mp4 --show

    # Compare against the shared matching of older releases (new tracks
    # only survive a frame once something matches them):
    python scripts/visualize_video.py input.mp4 out.mp4 --shared-matching
"""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import cv2
import numpy as np

from vision_shared.events.schemas import DetectionPayload
from vision_shared.logging import configure_logging

from perception.config import PerceptionConfig
from perception.model_registry import ModelRegistry, ultralytics_loader
from perception.session import DetectionSession
from perception.tracker import Tracker, TrackerConfig

# BGR, as drawn on frames from cv2.VideoCapture
_COLORS = [
    (0, 0, 255),  # red
    (0, 255, 0),  # green
    (255, 0, 0),  # blue
    (0, 165, 255),  # orange
    (128, 0, 128),  # purple
    (255, 255, 0),  # cyan
]
_UNTRACKED = (200, 200, 200)


def _color_for_track(track_id: int | None) -> tuple[int, int, int]:
    if track_id is None:
        return _UNTRACKED
    return _COLORS[track_id % len(_COLORS)]


def draw_detection(frame: np.ndarray, det: DetectionPayload) -> None:
    """Draw one detection box and its caption on a BGR frame (in-place)."""
    color = _color_for_track(det.tracking_id)
    x1, y1 = int(det.left), int(det.top)
    x2, y2 = int(det.left + det.width), int(det.top + det.height)
    cv2.rectangle(frame, (x1, y1), (x2, y2), color, 2)

    caption = f"{det.label} {det.confidence:.2f}"
    if det.tracking_id is not None:
        caption = f"#{det.tracking_id} {caption}"
    cv2.putText(
        frame, caption, (x1, max(y1 - 8, 12)),
        cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2, cv2.LINE_AA
    )


def main() -> None:
    defaults = PerceptionConfig()

    parser = argparse.ArgumentParser(description="Visualize detection + tracking on a video")
    parser.add_argument("input", help="Input video file path")
    parser.add_argument("output", nargs="?", help="Output annotated video path")
    parser.add_argument("--show", action="store_true", help="Display frames live")
    parser.add_argument("--model", default=None, help="Model name from models.yaml")
    parser.add_argument("--conf", type=float, default=0.4, help="Confidence threshold")
    parser.add_argument("--device", default="cpu", help="Torch device")
    parser.add_argument(
        "--threshold", type=float, default=0.5, help="IoU a box must exceed to keep its id"
    )
    parser.add_argument(
        "--shared-matching",
        action="store_true",
        help="Let several boxes claim the same track in one frame",
    )
    parser.add_argument("--no-tracking", action="store_true", help="Draw detections only")
    args = parser.parse_args()

    configure_logging("console", "WARNING")

    if not Path(args.input).exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        sys.exit(1)

    models = ModelRegistry(
        defaults.models_manifest,
        defaults.models_dir,
        loader=ultralytics_loader(device=args.device, confidence=args.conf),
    )
    tracker = Tracker(
        TrackerConfig(
            match_threshold=args.threshold,
            exclusive_matching=not args.shared_matching,
        )
    )
    session = DetectionSession(
        models,
        tracker=tracker,
        tracking_enabled=not args.no_tracking,
        initial_model=args.model,
    )
    print(f"Model: {session.model_name}")

    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        print(f"Error: cannot open video: {args.input}", file=sys.stderr)
        sys.exit(1)

    fps = cap.get(cv2.CAP_PROP_FPS) or 30
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    total = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))

    writer = None
    if args.output:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(args.output, fourcc, fps, (width, height))

    print(f"Input:  {args.input} ({width}x{height} @ {fps:.1f} fps, {total} frames)")
    if args.output:
        print(f"Output: {args.output}")

    frame_idx = 0
    t_start = time.monotonic()

    try:
        while True:
            ok, frame = cap.read()  # BGR
            if not ok:
                break

            result = session.process_frame(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            for det in result.detections:
                draw_detection(frame, det)

            elapsed = time.monotonic() - t_start
            proc_fps = (frame_idx + 1) / elapsed if elapsed > 0 else 0
            cv2.putText(
                frame,
                f"Frame {frame_idx} | {result.processing_time_ms} ms | "
                f"live tracks {len(session.tracker.registry)} | next id {session.tracker.next_id}",
                (10, 28),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.7,
                (255, 255, 255),
                2,
                cv2.LINE_AA,
            )

            if writer:
                writer.write(frame)

            if args.show:
                cv2.imshow("Object Tracking", frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break

            frame_idx += 1
            if frame_idx % 30 == 0:
                print(f"  {frame_idx}/{total} frames ({proc_fps:.1f} fps processing)")

    finally:
        cap.release()
        if writer:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    elapsed = time.monotonic() - t_start
    print(f"\nDone. {frame_idx} frames in {elapsed:.1f}s ({frame_idx / max(elapsed, 1e-9):.1f} fps)")
    print(f"Track ids handed out: {session.tracker.next_id - 1}")
    if args.output:
        print(f"Annotated video saved to: {args.output}")


if __name__ == "__main__":
    main()
