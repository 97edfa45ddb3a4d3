"""Centralized configuration for the scraper web API."""

import os

# Flask app settings (allow env overrides; default debug off for safety).
# Hosting platforms set PORT dynamically; fall back to FLASK_PORT or 3000 for local.
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "3000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# CORS
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*")
CORS_HEADERS = "Content-Type"

# Deployment label reported by /api/health
ENVIRONMENT = os.getenv("APP_ENV", "local")

# Log pipeline events to JSONL files under logs/
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "True").lower() == "true"
