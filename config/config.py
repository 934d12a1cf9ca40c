"""
Configuration settings for the temporary PDF backend
"""

import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

# API Configuration
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")  # empty: use the request's base URL

# Artifact lifecycle
ARTIFACT_TTL_SECONDS = int(os.getenv("ARTIFACT_TTL_SECONDS", 5 * 60))  # 5 minutes
RECLAMATION_INTERVAL_SECONDS = float(os.getenv("RECLAMATION_INTERVAL_SECONDS", 60))

# Storage Configuration
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "disk")  # disk, memory or cloudinary
ARTIFACT_DIR = os.getenv("ARTIFACT_DIR", os.path.join(tempfile.gettempdir(), "temp-pdf"))
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "temp-pdf")

# Upload Configuration
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", 20000))

# Rendering Configuration
PAGE_WIDTH = 600
PAGE_HEIGHT = 400
FONT_SIZE = 15
FONT_PATH = os.getenv("FONT_PATH", "")  # TTF with Unicode coverage, Helvetica otherwise
RENDER_WORKERS = int(os.getenv("RENDER_WORKERS", 3))

# Logging
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() in ("1", "true", "yes")
