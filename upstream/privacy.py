"""
Classification of images as public or private.

An image is public when its registry serves the manifest to an anonymous
client, and private when the registry refuses with an authorization error.
Private images are the ones that must be rewritten to a registry the
license can pull from. Every other failure aborts the classification: an
image that cannot be classified is neither safe to leave alone nor safe to
drop.
"""

import concurrent.futures
import logging
import threading

import httpx

from .config import config
from .errors import ImageProbeError, UpstreamError, is_unauthorized
from .image import RegistryClient
from .lifecycle import CancelToken
from .types import ImageClassification, ImageVisibility
from .validation import parse_image_reference

logger = logging.getLogger(__name__)


def classify_image(
    image: str, registry: RegistryClient, cancel: CancelToken | None = None
) -> ImageClassification:
    """
    Classify one image by opening it anonymously.

    Raises:
        InvalidImageReference: if the reference cannot be parsed
        ProbeNetworkFailure: if the registry cannot be reached
        ImageProbeError: for any non-authorization registry failure
        FetchCancelled: if ``cancel`` fires while the registry is being asked
    """
    ref = parse_image_reference(image)
    try:
        registry.open_image(ref, cancel)
    except UpstreamError as e:
        if is_unauthorized(e):
            logger.info(f"Image {image} is private")
            return ImageClassification(name=image, visibility=ImageVisibility.PRIVATE)
        logger.error(f"Failed to probe image {image}: {e}")
        raise

    logger.debug(f"Image {image} is public")
    return ImageClassification(name=image, visibility=ImageVisibility.PUBLIC)


def classify_images(
    images: list[str],
    client: httpx.Client | None = None,
    workers: int | None = None,
    cancel: CancelToken | None = None,
    scheme: str = "https",
) -> list[ImageClassification]:
    """
    Classify images concurrently.

    Probes run on a bounded thread pool. The result is sorted by image
    reference, whatever order the probes finish in. The first failure that
    is not an authorization failure cancels the remaining probes and is
    raised.

    Args:
        images: Image references found in the release
        client: HTTP client shared by all probes (created if omitted)
        workers: Pool size, defaults to IMAGE_PROBE_WORKERS
        cancel: Cancellation token checked before and while probing
        scheme: Registry URL scheme

    Returns:
        One ImageClassification per distinct image

    Raises:
        FetchCancelled: if ``cancel`` fires before all probes complete
        ImageProbeError, InvalidImageReference: as raised by classify_image
    """
    images = sorted(set(images))
    if not images:
        return []

    workers = max(1, workers or config.IMAGE_PROBE_WORKERS)
    results = []
    lock = threading.Lock()

    def probe(image: str):
        if cancel is not None:
            cancel.check(f"probe of {image}")
        classification = classify_image(image, registry, cancel)
        with lock:
            results.append(classification)

    logger.info(f"Probing {len(images)} images with {workers} workers")
    with RegistryClient(client, scheme=scheme) as registry:
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {executor.submit(probe, image): image for image in images}
            _wait_all(futures, cancel)
        except BaseException:
            # probes still running are abandoned, not awaited
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown()

    results.sort(key=lambda c: c.name)
    return results


def _wait_all(futures: dict, cancel: CancelToken | None):
    pending = set(futures)
    while pending:
        timeout = None
        if cancel is not None:
            cancel.check("image probing")
            timeout = cancel.remaining()
            # poll so an explicit cancel() is noticed without a deadline
            timeout = 0.1 if timeout is None else min(timeout, 0.1)

        done, pending = concurrent.futures.wait(
            pending, timeout=timeout, return_when=concurrent.futures.FIRST_EXCEPTION
        )
        for future in done:
            err = future.exception()
            if err is not None:
                if isinstance(err, ImageProbeError) and err.stage is None:
                    err.stage = "image probe"
                raise err


def find_private_images(images: list[str], **kwargs) -> list[str]:
    """Return the images that must be rewritten because anonymous pulls are refused."""
    classifications = classify_images(images, **kwargs)
    private = [c.name for c in classifications if c.is_private]
    logger.info(f"{len(private)} of {len(classifications)} images are private")
    return private
