#!/usr/bin/env python3
"""
rPPG Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH            Camera resolution (default: 640x480)
    --fps INT                   Requested camera frame rate (default: 30)
    --camera-index INT          OpenCV camera index (default: 0)
    --no-flip                   Disable horizontal mirror
    --window INT                Samples per analysis window, power of two (default: 256)
    --sampling-interval FLOAT   Milliseconds between samples (default: 50)
    --detection-interval FLOAT  Milliseconds between face detections (default: 100)
    --min-hz / --max-hz FLOAT   Heart-rate search band (default: 0.75 – 2.67 Hz)
    --resample                  Use measured sample times instead of the nominal rate
    --headless                  Run without display window (log BPM to stdout)
    --verbose                   Debug logging

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    r        – restart the measurement (clears the window)
    s        – save a single annotated frame as PNG
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from rppg_monitor.camera import Webcam
from rppg_monitor.capture_session import CaptureSession
from rppg_monitor.config import RppgConfig
from rppg_monitor.face_detector import HaarFaceDetector
from rppg_monitor.spectral_estimator import Estimate
from rppg_monitor.visualizer import Visualizer

logger = logging.getLogger("rppg_monitor")

WINDOW_NAME = "rPPG Monitor"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = RppgConfig()
    parser = argparse.ArgumentParser(
        description="Contactless heart-rate monitor from a webcam (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Requested capture frame rate")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--no-flip", action="store_true",
                        help="Disable horizontal image flip")
    parser.add_argument("--window", type=int, default=defaults.buffer_size,
                        help="Samples per analysis window (power of two)")
    parser.add_argument("--sampling-interval", type=float,
                        default=defaults.sampling_interval_ms,
                        help="Milliseconds between accepted samples")
    parser.add_argument("--detection-interval", type=float,
                        default=defaults.detection_interval_ms,
                        help="Milliseconds between face detections")
    parser.add_argument("--min-hz", type=float, default=defaults.min_freq_hz,
                        help="Lower bound of the heart-rate band")
    parser.add_argument("--max-hz", type=float, default=defaults.max_freq_hz,
                        help="Upper bound of the heart-rate band")
    parser.add_argument("--resample", action="store_true",
                        help="Resample onto measured timestamps before the FFT")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log BPM to stdout only")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RppgConfig:
    return RppgConfig(
        buffer_size=args.window,
        sampling_interval_ms=args.sampling_interval,
        detection_interval_ms=args.detection_interval,
        min_freq_hz=args.min_hz,
        max_freq_hz=args.max_hz,
        resample=args.resample,
    )


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

async def monitor(args: argparse.Namespace, config: RppgConfig,
                  resolution: tuple[int, int]) -> int:
    camera = Webcam(
        resolution=resolution,
        fps=args.fps,
        flip_horizontal=not args.no_flip,
        camera_index=args.camera_index,
    )
    session = CaptureSession(
        frame_source=camera.latest_frame,
        detector=HaarFaceDetector(),
        config=config,
        red_channel=2,          # OpenCV frames are BGR
    )
    vis = Visualizer(resolution=resolution, show_fps=not args.headless)
    loop = asyncio.get_running_loop()

    logger.info("Starting rPPG monitor.  Press 'q' or ESC to quit.")
    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, *resolution)

    frame_idx = 0
    log_interval = max(1, args.fps)  # log to stdout every ~1 second

    try:
        with camera:
            session.start()
            while True:
                frame = await loop.run_in_executor(None, camera.read_frame)
                if frame is None:
                    await asyncio.sleep(0.01)
                    continue

                result = session.last_result

                if args.headless and frame_idx % log_interval == 0:
                    ts = time.strftime("%H:%M:%S")
                    if isinstance(result, Estimate):
                        print(f"[{ts}] BPM={result.bpm}  ({result.frequency_hz:.2f} Hz)")
                    else:
                        print(f"[{ts}] Waiting for signal…  status={session.status.value}  "
                              f"window={session.buffer_fill_ratio:.0%}")

                if not args.headless:
                    # Draw on a copy: the detector reads camera.latest_frame
                    annotated = vis.draw(
                        frame.copy(),
                        result=result,
                        status=session.status,
                        buffer_fill=session.buffer_fill_ratio,
                        face=session.last_face,
                        window=session.window,
                    )
                    cv2.imshow(WINDOW_NAME, annotated)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord("q"), 27):          # q or ESC
                        logger.info("Quit requested by user.")
                        break
                    elif key == ord("r"):
                        session.stop()
                        session.start()
                        logger.info("Measurement restarted.")
                    elif key == ord("s"):
                        fname = f"snapshot_{int(time.time())}.png"
                        cv2.imwrite(fname, annotated)
                        logger.info("Saved snapshot: %s", fname)

                frame_idx += 1
    finally:
        session.stop()
        if not args.headless:
            cv2.destroyAllWindows()

    return 0


def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    try:
        config = build_config(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    try:
        return asyncio.run(monitor(args, config, (res_w, res_h)))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
