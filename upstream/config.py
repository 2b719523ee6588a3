"""
Configuration module for upstream retrieval.

Loads all configuration from environment variables with sensible defaults.
"""

import os


class Config:
    """
    Upstream retrieval configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable.
    """

    def __init__(self):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            RELEASE_TIMEOUT: Release HEAD/GET timeout in seconds. Default: 60
            METADATA_HOST: Primary application metadata host. Default: replicated.app
            METADATA_FALLBACK_HOST: Fallback metadata host. Default: staging.replicated.app
            IMAGE_PROBE_WORKERS: Concurrent registry probes. Default: 8
            IMAGE_PROBE_TIMEOUT: Per-request registry timeout in seconds. Default: 15
            MAX_IMAGE_NAME_LENGTH: Maximum image reference length. Default: 255
            MAX_TAG_LENGTH: Maximum tag length. Default: 128
            UPSTREAM_URI: Distribution URI pulled by app.py. Default: empty
            LOCAL_PATH: Local release directory used instead of downloading. Default: empty
            LICENSE_FILE: License document path. Default: empty
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Release service
        self.RELEASE_TIMEOUT = float(os.getenv("RELEASE_TIMEOUT", "60"))  # seconds
        self.METADATA_HOST = os.getenv("METADATA_HOST", "replicated.app")
        self.METADATA_FALLBACK_HOST = os.getenv("METADATA_FALLBACK_HOST", "staging.replicated.app")

        # Image probing
        self.IMAGE_PROBE_WORKERS = int(os.getenv("IMAGE_PROBE_WORKERS", "8"))
        self.IMAGE_PROBE_TIMEOUT = float(os.getenv("IMAGE_PROBE_TIMEOUT", "15"))  # seconds

        # Validation limits
        self.MAX_IMAGE_NAME_LENGTH = int(os.getenv("MAX_IMAGE_NAME_LENGTH", "255"))
        self.MAX_TAG_LENGTH = int(os.getenv("MAX_TAG_LENGTH", "128"))

        # Pull inputs
        self.UPSTREAM_URI = os.getenv("UPSTREAM_URI", "")
        self.LOCAL_PATH = os.getenv("LOCAL_PATH", "")
        self.LICENSE_FILE = os.getenv("LICENSE_FILE", "")

    def __repr__(self):
        """String representation for logging."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"RELEASE_TIMEOUT={self.RELEASE_TIMEOUT}, "
            f"METADATA_HOST={self.METADATA_HOST}, "
            f"IMAGE_PROBE_WORKERS={self.IMAGE_PROBE_WORKERS}, "
            f"UPSTREAM_URI={self.UPSTREAM_URI})"
        )


# Global config instance
config = Config()
