"""Diff the registry against the workloads and delete what nothing uses."""

from typing import Iterable, List, Set

import requests

from reggc.image_reference import ImageReference
from reggc.registry_client import RegistryAPIError, RegistryClient
from reggc.utils.error_utils import DeletionError, create_registry_error
from reggc.utils.logging_utils import get_logger

logger = get_logger(__name__)


def find_unreferenced(
    registry_images: Iterable[ImageReference], workload_images: Iterable[ImageReference]
) -> Set[ImageReference]:
    """Registry images that no workload references, by exact equality."""
    return set(registry_images) - set(workload_images)


class Reconciler:
    """Deletes unreferenced images from the registry.

    Deletions are not transactional: the first failure aborts the run and
    images already deleted in the same run stay deleted.
    """

    def __init__(self, registry: RegistryClient, dry_run: bool = False):
        self.registry = registry
        self.dry_run = dry_run

    def reconcile(
        self, registry_images: Iterable[ImageReference], workload_images: Iterable[ImageReference]
    ) -> List[ImageReference]:
        """Delete every image in registry_images that is absent from workload_images.

        Returns:
            The images deleted (or, in dry-run mode, that would have been deleted)

        Raises:
            DeletionError: on the first image that fails to delete
        """
        unreferenced = find_unreferenced(registry_images, workload_images)
        if not unreferenced:
            logger.info("no unreferenced images")
            return []

        deleted = []
        for image in sorted(unreferenced, key=str):
            if self.dry_run:
                logger.info("would delete image image=%s", image)
            else:
                self.delete_image(image)
            deleted.append(image)
        return deleted

    def delete_image(self, image: ImageReference) -> None:
        try:
            self.registry.delete_tag(image.repository, image.tag)
        except (RegistryAPIError, requests.RequestException) as e:
            raise create_registry_error(DeletionError, "delete image", str(image), self.registry.registry_url, e) from e
        logger.info("deleted image image=%s", image)
