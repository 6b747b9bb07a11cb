#!/usr/bin/env python3
"""
Download the MediaPipe models used by the preview pipeline.

- Face Landmarker: landmarks for the liveness challenges
- Selfie Segmenter (landscape): foreground mask for background blur
"""

import urllib.request
from pathlib import Path

MODELS_DIR = Path.home() / ".mediapipe_models"

MODELS = {
    "face_landmarker.task": (
        "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
        "face_landmarker/float16/latest/face_landmarker.task"
    ),
    "selfie_segmenter_landscape.tflite": (
        "https://storage.googleapis.com/mediapipe-models/image_segmenter/"
        "selfie_segmenter_landscape/float16/latest/selfie_segmenter_landscape.tflite"
    ),
}

ENV_VARS = {
    "face_landmarker.task": "FACE_LANDMARKER_MODEL_PATH",
    "selfie_segmenter_landscape.tflite": "SELFIE_SEGMENTER_MODEL_PATH",
}


def download_model(name: str, url: str) -> bool:
    """Download one model into MODELS_DIR unless it is already there."""
    MODELS_DIR.mkdir(parents=True, exist_ok=True)
    model_path = MODELS_DIR / name

    if model_path.exists():
        print(f"✓ {name} already exists at {model_path}")
        return True

    print(f"Downloading {name} from {url}...")
    try:
        def report_progress(block_num, block_size, total_size):
            if total_size <= 0:
                return
            percent = min(100, block_num * block_size * 100 / total_size)
            print(f"\rProgress: {percent:.1f}%", end="")

        urllib.request.urlretrieve(url, model_path, reporthook=report_progress)
        size_mb = model_path.stat().st_size / 1024 / 1024
        print(f"\n✓ {name} ready ({size_mb:.2f} MB)")
        return True

    except Exception as e:
        print(f"\n✗ Download failed: {e}")
        if model_path.exists():
            model_path.unlink()
        return False


def main():
    print("=" * 60)
    print("MediaPipe Model Downloader")
    print("=" * 60)

    ok = all([download_model(name, url) for name, url in MODELS.items()])

    print("\n" + "=" * 60)
    if ok:
        print("Setup Complete!")
        print("=" * 60)
        print("\nOverride locations with environment variables:")
        for name, env_var in ENV_VARS.items():
            print(f"  {env_var}={MODELS_DIR / name}")
    else:
        print("Setup Failed")
        print("=" * 60)
        print("\nPlease check your internet connection and try again.")


if __name__ == "__main__":
    main()
