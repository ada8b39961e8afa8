import re
from typing import Optional

from kure_gate.errors import ImageReferenceError
from kure_gate.models.models import FrozenModel

_DIGEST_RE = re.compile(r'^sha256:([0-9a-fA-F]+)$')
_TAG_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$')
_PATH_COMPONENT = r'[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*'
_REPOSITORY_RE = re.compile(rf'^{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*$')


class ImageReference(FrozenModel):
    registry: Optional[str] = None
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None  # hex part of "sha256:<hex>"

    @property
    def implicit_latest(self) -> bool:
        """A bare name with neither tag nor digest resolves to :latest"""
        return self.tag is None and self.digest is None

    @property
    def effective_tag(self) -> Optional[str]:
        if self.implicit_latest:
            return "latest"
        return self.tag

    @property
    def registry_host(self) -> Optional[str]:
        """Registry without its port number"""
        if self.registry is None:
            return None
        return self.registry.split(':')[0]

    def __str__(self):
        ref = f"{self.registry}/{self.repository}" if self.registry else self.repository
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@sha256:{self.digest}"
        return ref


def _is_registry_host(component: str) -> bool:
    return '.' in component or ':' in component or component == 'localhost'


def parse_image_reference(image: str) -> ImageReference:
    """Parse a container image string.

    The digest is split off at the last '@', the registry is the first path
    component when it looks like a host (contains '.' or ':' or is
    'localhost'), and the tag follows the last ':' of the remaining path.
    A registry port number is never mistaken for a tag.
    """
    if not isinstance(image, str) or not image.strip():
        raise ImageReferenceError("image reference is empty")
    if any(ch.isspace() for ch in image):
        raise ImageReferenceError(f"image reference '{image}' contains whitespace")

    name = image
    digest = None
    if '@' in image:
        name, _, digest_part = image.rpartition('@')
        match = _DIGEST_RE.match(digest_part)
        if not match:
            raise ImageReferenceError(f"image reference '{image}' has an invalid digest '{digest_part}'")
        digest = match.group(1).lower()

    registry = None
    path = name
    if '/' in name:
        first, rest = name.split('/', 1)
        if _is_registry_host(first):
            registry, path = first, rest

    tag = None
    if ':' in path:
        path, _, tag = path.rpartition(':')
        if not _TAG_RE.match(tag):
            raise ImageReferenceError(f"image reference '{image}' has an invalid tag '{tag}'")

    if not _REPOSITORY_RE.match(path):
        raise ImageReferenceError(f"image reference '{image}' has an invalid repository '{path}'")

    return ImageReference(registry=registry, repository=path, tag=tag, digest=digest)
