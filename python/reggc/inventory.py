"""
Inventory fetchers: images stored in the registry and images used by pods.

Both fetchers return complete sets or raise; a partial view could make an
in-use image look unreferenced.
"""

from typing import Any, Iterable, Set

import requests
from urllib3.exceptions import HTTPError as TransportError

from reggc.image_reference import ImageReference
from reggc.registry_client import RegistryAPIError, RegistryClient
from reggc.utils.error_utils import (
    ImageReferenceError,
    RegistryListError,
    WorkloadListError,
    create_kubernetes_error,
    create_registry_error,
)
from reggc.utils.logging_utils import get_logger

logger = get_logger(__name__)

# Page size for cluster-wide pod listing
POD_PAGE_SIZE = 500


def fetch_registry_images(registry: RegistryClient, public_host: str) -> Set[ImageReference]:
    """List every repository:tag in the registry, qualified with public_host.

    Images are composed with the host workloads pull from, not the registry's
    internal API address, so they compare equal to pod image strings.

    Raises:
        RegistryListError: if any repository or tag listing fails
    """
    images: Set[ImageReference] = set()
    try:
        repositories = registry.list_repositories()
    except (RegistryAPIError, requests.RequestException, ValueError) as e:
        raise create_registry_error(RegistryListError, "get repository list", None, registry.registry_url, e) from e

    for repository in repositories:
        try:
            tags = registry.list_tags(repository)
        except (RegistryAPIError, requests.RequestException, ValueError) as e:
            raise create_registry_error(
                RegistryListError, "get tags for repository", repository, registry.registry_url, e
            ) from e
        for tag in tags:
            images.add(ImageReference(public_host, repository, tag))

    logger.debug("registry holds %d images in %d repositories", len(images), len(repositories))
    return images


def _pod_images(pod: Any) -> Iterable[str]:
    spec = pod.spec
    if spec is None:
        return []
    containers = list(spec.containers or []) + list(spec.init_containers or [])
    return [c.image for c in containers if c.image]


def fetch_workload_images(core_v1: Any) -> Set[ImageReference]:
    """Collect the image of every container of every pod in every namespace.

    Image strings that are not host/repository:tag (for example Docker Hub
    shorthand such as "nginx") cannot name a registry image and are skipped.

    Raises:
        WorkloadListError: if the Kubernetes API call fails
    """
    from kubernetes.client.rest import ApiException

    images: Set[ImageReference] = set()
    continue_token = None
    while True:
        kwargs = {"limit": POD_PAGE_SIZE}
        if continue_token:
            kwargs["_continue"] = continue_token
        try:
            pods = core_v1.list_pod_for_all_namespaces(**kwargs)
        except (ApiException, TransportError, OSError) as e:
            raise create_kubernetes_error(WorkloadListError, "list pods in all namespaces", None, e) from e

        for pod in pods.items:
            for image in _pod_images(pod):
                try:
                    images.add(ImageReference.parse(image))
                except ImageReferenceError:
                    logger.debug("ignoring unqualified workload image %s", image)

        continue_token = pods.metadata._continue if pods.metadata else None
        if not continue_token:
            break

    logger.debug("workloads reference %d images", len(images))
    return images
