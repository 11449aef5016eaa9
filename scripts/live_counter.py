#!/usr/bin/env python3
from __future__ import annotations

import argparse
import time
from pathlib import Path

from analysis.analyzer import FramePipeline
from pose.backend import PoseBackend
from pose.draw import render_instructions, render_video_with_counter


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Count squats and check form from a webcam or a video file.")
    p.add_argument("--camera", type=int, default=0, help="webcam index (live mode)")
    p.add_argument("--width", type=int, default=1280)
    p.add_argument("--height", type=int, default=720)
    p.add_argument("--model-complexity", type=int, default=1, choices=(0, 1, 2))
    p.add_argument("--min-visibility", type=float, default=0.5)
    p.add_argument("--video", type=str, default=None, help="annotate this video instead of the webcam")
    p.add_argument("--output", type=str, default="output_annotated.mp4", help="output path for --video")
    return p.parse_args(argv)


def run_live(args: argparse.Namespace) -> int:
    try:
        import cv2  # type: ignore
    except ImportError:
        print("[live] OpenCV (cv2) is required. Install with `pip install opencv-python`")
        return 1

    cap = cv2.VideoCapture(args.camera)
    if not cap.isOpened():
        print(f"[live] Failed to open camera {args.camera}")
        return 1
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, args.width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, args.height)

    pipeline = FramePipeline(min_visibility=args.min_visibility)
    print("[live] Press 'q' to quit, 'r' to reset the counter.")
    try:
        with PoseBackend(model_complexity=args.model_complexity) as backend:
            while True:
                ok, frame = cap.read()
                if not ok:
                    print("[live] Camera stopped delivering frames.")
                    break
                result = pipeline.process(backend.infer(frame))
                if result.rep_event:
                    print(f"[live] Rep {result.count}")
                cv2.imshow("Squat Counter", render_instructions(frame, result.instructions))
                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    break
                if key == ord("r"):
                    pipeline.reset()
                    print("[live] Counter reset.")
    finally:
        cap.release()
        cv2.destroyAllWindows()

    print(f"[live] Total squats: {pipeline.state.count}")
    return 0


def run_video(args: argparse.Namespace) -> int:
    if not Path(args.video).exists():
        print(f"Video not found: {args.video}")
        return 1
    t0 = time.time()
    results = render_video_with_counter(
        args.video,
        args.output,
        backend_factory=lambda: PoseBackend(model_complexity=args.model_complexity),
        pipeline_factory=lambda: FramePipeline(min_visibility=args.min_visibility),
    )
    elapsed = max(1e-6, time.time() - t0)
    reps = results[-1].count if results else 0
    print(f"Wrote annotated video to: {args.output}")
    print(f"Squats: {reps}, frames: {len(results)}, elapsed: {elapsed:.2f}s")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    return run_video(args) if args.video else run_live(args)


if __name__ == "__main__":
    raise SystemExit(main())
