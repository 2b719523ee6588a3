"""
Pull an upstream release and report what the overlay stages will receive.

Reads its inputs from the environment, fetches the upstream, and logs the
materialized files and the images that need rewriting.

Environment Variables:
    UPSTREAM_URI (required), LOCAL_PATH, LICENSE_FILE, LOG_LEVEL,
    RELEASE_TIMEOUT, IMAGE_PROBE_WORKERS, IMAGE_PROBE_TIMEOUT

Example:
    $ UPSTREAM_URI=replicated://myapp/stable LICENSE_FILE=license.yaml python app.py
    $ UPSTREAM_URI=replicated://myapp LOCAL_PATH=./release LOG_LEVEL=DEBUG python app.py
"""

import logging
import sys

from upstream import UpstreamError, pull_upstream
from upstream.config import config

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for pulling an upstream."""
    logger.info(f"Configuration: {config}")
    logger.info(f"Log level: {logging.getLevelName(logger.getEffectiveLevel())}")

    if not config.UPSTREAM_URI:
        logger.error("UPSTREAM_URI is not set")
        return 2

    try:
        result = pull_upstream(
            config.UPSTREAM_URI,
            local_path=config.LOCAL_PATH or None,
            license_file=config.LICENSE_FILE or None,
        )
    except UpstreamError as e:
        logger.error(f"Failed to pull {config.UPSTREAM_URI}: {e}")
        return 1

    upstream = result.upstream
    logger.info(
        f"Pulled {upstream.name} version {upstream.version_label or '(none)'} "
        f"(cursor {upstream.update_cursor})"
    )
    for f in upstream.files:
        logger.info(f"  {f.path} ({len(f.content)} bytes)")
    if result.private_images:
        logger.info(f"Private images to rewrite for {result.registry_host}: {', '.join(result.private_images)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
