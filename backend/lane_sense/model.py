"""Segmentation model file location and download (CLI and API share this)."""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import Path
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

MODEL_NAME = "yolopv2_384x640.onnx"
RESOURCES_URL = "https://s3.ap-northeast-2.wasabisys.com/pinto-model-zoo/326_YOLOPv2/resources.tar.gz"
MODEL_PATH_ENV = "LANE_SENSE_MODEL_PATH"


def get_model_path() -> Path:
    """Return the expected ONNX model path.

    ``LANE_SENSE_MODEL_PATH`` wins; otherwise ``backend/models/`` next to the
    package.
    """
    override = os.environ.get(MODEL_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parents[1] / "models" / MODEL_NAME


def extract_model(archive: Path, target: Path) -> None:
    """Extract the model from a tar.gz archive to *target*.

    The archive nests the file in subdirectories; the first member ending in
    ``target.name`` (or MODEL_NAME) is written flat next to *target*.
    """
    with tarfile.open(archive, "r:gz") as tf:
        names = (target.name, MODEL_NAME)
        member = next(
            (m for m in tf.getmembers() if m.isfile() and m.name.endswith(names)),
            None,
        )
        if member is None:
            raise FileNotFoundError(f"{MODEL_NAME} not found in {archive}")
        member.name = target.name  # strip any subdirectory prefix
        tf.extract(member, target.parent)


def download_model(
    target: Path,
    url: str = RESOURCES_URL,
    progress: Optional[Callable[[int, int], None]] = None,
) -> Path:
    """Download the resources archive and extract the model to *target*."""
    target.parent.mkdir(parents=True, exist_ok=True)
    archive = target.parent / "resources.tar.gz"
    try:
        with httpx.stream("GET", url, follow_redirects=True, timeout=None) as response:
            response.raise_for_status()
            total = int(response.headers.get("content-length", 0))
            downloaded = 0
            with archive.open("wb") as f:
                for chunk in response.iter_bytes(65536):
                    f.write(chunk)
                    downloaded += len(chunk)
                    if progress is not None:
                        progress(downloaded, total)
        logger.info("Extracting %s from %s", target.name, archive)
        extract_model(archive, target)
    finally:
        archive.unlink(missing_ok=True)
    return target


def download_cli() -> None:
    """Console entry point: fetch the model unless it is already present."""
    target = get_model_path()
    if target.exists():
        print(f"Model already exists at {target}")
        return

    print(f"Downloading {RESOURCES_URL} ...")
    last_pct = -1

    def report(downloaded: int, total: int) -> None:
        nonlocal last_pct
        if total:
            pct = downloaded * 100 // total
            if pct != last_pct and pct % 10 == 0:
                print(f"  {pct}%")
                last_pct = pct

    download_model(target, progress=report)
    print(f"Model saved to {target}")
