#!/usr/bin/env python3
"""Run the face mesh pipeline on an image and draw the result.

Usage:
    python scripts/annotate_image.py input.jpg output.jpg [--config config.json]

Exit codes:
    0: At least one face found
    1: No faces found or input unreadable
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from meshtrack.adapter.vision import MediaPipeFaceDetector  # noqa: E402
from meshtrack.config import load_config  # noqa: E402
from meshtrack.pipeline import FaceMeshPipeline  # noqa: E402

ANNOTATION_COLORS = {
    "lips": (0, 0, 255),
    "Eye": (0, 255, 0),
    "Iris": (255, 255, 0),
}


def _color_for(key: str) -> tuple[int, int, int]:
    for fragment, color in ANNOTATION_COLORS.items():
        if fragment in key:
            return color
    return (200, 200, 200)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("input", type=Path)
    parser.add_argument("output", type=Path)
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import cv2

    bgr = cv2.imread(str(args.input))
    if bgr is None:
        print(f"FAIL: Could not read image: {args.input}")
        return 1

    overrides = {"debug": True} if args.debug else {}
    config = load_config(args.config, **overrides)
    pipeline = FaceMeshPipeline(config, MediaPipeFaceDetector())
    pipeline.load()
    try:
        faces = pipeline.predict(bgr[:, :, ::-1])
    finally:
        pipeline.close()

    for face in faces:
        x, y, w, h = face.box
        cv2.rectangle(bgr, (x, y), (x + w, y + h), (255, 0, 0), 2)
        for key, points in face.annotations.items():
            for p in points:
                cv2.circle(bgr, (int(p[0]), int(p[1])), 1, _color_for(key), -1)
        print(f"Face {face.id}: score={face.score} box={face.box} points={len(face.mesh)}")

    cv2.imwrite(str(args.output), bgr)
    if not any(face.score > 0 for face in faces):
        print("FAIL: No faces found")
        return 1

    print(f"OK: Wrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
