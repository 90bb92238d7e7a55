import configparser
import logging
import os

logger = logging.getLogger(__name__)

ENDPOINT_ENV = "AZURE_FORM_RECOGNIZER_ENDPOINT"
KEY_ENV = "AZURE_FORM_RECOGNIZER_KEY"

PLACEHOLDER_MARKERS = ("paste_your", "your-resource", "<", "changeme")


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or still a placeholder."""


def _is_placeholder(value) -> bool:
    if not value or not value.strip():
        return True
    lowered = value.strip().lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


class Config:
    def __init__(self, filename='config.txt'):
        self.filename = filename
        self.config = configparser.ConfigParser()

        if not os.path.exists(filename):
            logger.info(f"Config file '{filename}' not found. Using defaults and environment.")

        # A malformed file raises configparser.Error; that is a fatal setup problem.
        self.config.read(filename, encoding="utf-8")

    def get_azure_credentials(self):
        """Returns (endpoint, key). Environment variables win over config.txt."""
        endpoint = os.getenv(ENDPOINT_ENV) or self.config.get('AZURE', 'ENDPOINT', fallback=None)
        key = os.getenv(KEY_ENV) or self.config.get('AZURE', 'API_KEY', fallback=None)

        if _is_placeholder(endpoint):
            raise ConfigurationError(f"MISSING ENDPOINT: set {ENDPOINT_ENV} or [AZURE] ENDPOINT in {self.filename}")
        if not endpoint.strip().lower().startswith("https://"):
            raise ConfigurationError(f"INVALID ENDPOINT: '{endpoint}' is not an https:// URL")
        if _is_placeholder(key):
            raise ConfigurationError(f"MISSING API KEY: set {KEY_ENV} or [AZURE] API_KEY in {self.filename}")
        return endpoint.strip(), key.strip()

    def get_processing_settings(self):
        return {
            "document_type": self.config.get('PROCESSING', 'DOCUMENT_TYPE', fallback="purchase-order"),
            "multi_page": self.config.getboolean('PROCESSING', 'MULTI_PAGE', fallback=False),
            "page_delay_ms": self.config.getint('PROCESSING', 'PAGE_DELAY_MS', fallback=1000),
            "retry_pass_delay_ms": self.config.getint('PROCESSING', 'RETRY_PASS_DELAY_MS', fallback=5000),
        }

    def get_paths(self):
        return {
            "input_dir": self.config.get('PATHS', 'INPUT_DIR', fallback="input_pdfs"),
            "output_dir": self.config.get('PATHS', 'OUTPUT_DIR', fallback="excel_outputs"),
        }
