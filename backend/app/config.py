import os
import logging
import sys

from dotenv import load_dotenv

# Values from a local .env never override the real environment
load_dotenv(override=False)

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Directory holding hvac-reports.json, calimed_devices.json, ...
STORAGE_PATH = os.getenv("HVAC_STORAGE_PATH", "./data")

ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:3001"
    ).split(",") if o.strip()
]

# PDF rendering
DISABLE_PDF = os.getenv("DISABLE_PDF", "false").lower() == "true"
WKHTMLTOPDF_PATH = os.getenv("WKHTMLTOPDF_PATH", "/usr/local/bin/wkhtmltopdf")
PDF_RENDER_TIMEOUT = float(os.getenv("PDF_RENDER_TIMEOUT", "60"))


# Logging configuration
def setup_logging():
    """Configure application logging"""
    log_level = logging.DEBUG if DEBUG else logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    logger = logging.getLogger('hvac_qualification')
    logger.setLevel(log_level)

    # Suppress noisy third-party loggers
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    return logger
