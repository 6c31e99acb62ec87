"""Central configuration for the MissingWatch API.

Consolidates environment-based config for storage, the comparison model
and upload limits.
"""

import os

# Storage Configuration
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
S3_BUCKET = os.getenv("S3_BUCKET", os.getenv("BUCKET", ""))
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
PRESIGN_EXPIRY_S = int(os.getenv("PRESIGN_EXPIRY_S", "900"))

# Comparison model (OpenAI-compatible chat completions)
VISION_MODEL = os.getenv("VISION_MODEL", "google/gemini-2.5-flash")
VISION_API_BASE_URL = os.getenv("VISION_API_BASE_URL", "")

# Upload limits / validation
IMG_MAX_MB = int(os.getenv("IMG_MAX_MB", "8"))
VIDEO_MAX_MB = int(os.getenv("VIDEO_MAX_MB", "512"))
ALLOWED_IMG_MIMES = {"image/jpeg", "image/png", "image/webp"}
ALLOWED_VIDEO_SUFFIXES = {".mp4", ".avi", ".mov", ".mkv", ".webm"}

# API Configuration
API_HOST = os.getenv("API_HOST", "localhost")
API_PORT = int(os.getenv("API_PORT", "8000"))
UI_ORIGIN = os.getenv("UI_ORIGIN", "http://localhost:5173")
