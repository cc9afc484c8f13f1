"""
Loan Origination API - Runtime Configuration

Environment-driven settings for the collaborators the screening workflow
talks to: asset storage, the core banking system (CBS) and the geo WPS.
"""
import os
from pathlib import Path

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_URL = os.getenv("API_URL", "http://127.0.0.1:8040")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# =============================================================================
# ASSETS
# =============================================================================

ASSETS_DIR = Path(os.getenv("ASSETS_DIR", str(Path.cwd() / "assets")))
ASSETS_URL = os.getenv("ASSETS_URL", f"{API_URL}/media/")
ASSETS_MAX_FILE_SIZE = int(os.getenv("ASSETS_MAX_FILE_SIZE", str(2 * 1024 * 1024)))  # 2MB

# =============================================================================
# CORE BANKING SYSTEM
# =============================================================================
# Defaults only. A persisted CBSConfigDB row (PUT /cbs/config) wins over these.

CBS_URL = os.getenv("CBS_URL", "https://cbs.example.com:443/api")
CBS_USERNAME = os.getenv("CBS_USERNAME", "")
CBS_PASSWORD = os.getenv("CBS_PASSWORD", "")
CBS_DEVICE_ID = os.getenv("CBS_DEVICE_ID", "origination-api")
CBS_TIMEOUT = float(os.getenv("CBS_TIMEOUT", "30"))

# =============================================================================
# GEO VALIDATION (WPS)
# =============================================================================

GEO_WPS_URL = os.getenv("GEO_WPS_URL", "")
GEO_TIMEOUT = float(os.getenv("GEO_TIMEOUT", "30"))
