"""Fully-qualified container image identity: host/repository:tag."""

from dataclasses import dataclass

from reggc.utils.error_utils import ImageReferenceError


@dataclass(frozen=True)
class ImageReference:
    """Image identity compared by exact equality of all three fields.

    No digest resolution and no version semantics: "a:v1" and "a:1" are
    different images, as are the same repository under two hosts.
    """

    registry_host: str
    repository: str
    tag: str

    @classmethod
    def parse(cls, image: str) -> "ImageReference":
        """Split on the first "/" and then on the first ":" of the remainder.

        Raises:
            ImageReferenceError: if either separator is missing or a part is empty
        """
        host, sep, remainder = image.partition("/")
        if not sep:
            raise ImageReferenceError("parse registry from", image)
        repository, sep, tag = remainder.partition(":")
        if not sep:
            raise ImageReferenceError("parse repository and tag from", image)
        if not host or not repository or not tag:
            raise ImageReferenceError("parse image reference", image)
        return cls(host, repository, tag)

    def __str__(self) -> str:
        return f"{self.registry_host}/{self.repository}:{self.tag}"
