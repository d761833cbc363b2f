"""
Resource loaders resolving block definition and generator script identifiers.
"""

import logging
import os
from typing import List, Sequence
from urllib.parse import urljoin

import requests

from .exceptions import LoadError


logger = logging.getLogger(__name__)


class ResourceLoader:
    """Resolves a resource identifier to its text content."""

    def fetch(self, resource_id: str) -> str:
        """Return the resource text. Raises LoadError when it cannot be fetched."""
        raise NotImplementedError


class FileResourceLoader(ResourceLoader):
    """Loads resources from files below a base directory (an assets folder)."""

    def __init__(self, base_dir: str, encoding: str = 'utf-8'):
        self.base_dir = os.path.abspath(base_dir)
        self.encoding = encoding

    def resolve_path(self, resource_id: str) -> str:
        path = os.path.abspath(os.path.join(self.base_dir, resource_id))
        if os.path.commonpath([self.base_dir, path]) != self.base_dir:
            raise LoadError(f"Resource {resource_id} is outside {self.base_dir}", resource_id)
        return path

    def fetch(self, resource_id: str) -> str:
        path = self.resolve_path(resource_id)
        try:
            with open(path, 'r', encoding=self.encoding) as f:
                return f.read()
        except (OSError, ValueError) as e:
            raise LoadError(f"Failed to read {resource_id}: {e}", resource_id,
                            {'path': path}) from e


class HttpResourceLoader(ResourceLoader):
    """Loads resources relative to a base URL."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session = None):
        self.base_url = base_url.rstrip('/') + '/'
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, resource_id: str) -> str:
        url = urljoin(self.base_url, resource_id.lstrip('/'))
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise LoadError(f"Failed to fetch {resource_id}: {e}", resource_id, {'url': url}) from e
        return response.text


class ChainedResourceLoader(ResourceLoader):
    """Tries each loader in turn and returns the first successful fetch."""

    def __init__(self, loaders: Sequence[ResourceLoader]):
        if not loaders:
            raise ValueError("ChainedResourceLoader needs at least one loader")
        self.loaders: List[ResourceLoader] = list(loaders)

    def fetch(self, resource_id: str) -> str:
        errors = []
        for loader in self.loaders:
            try:
                return loader.fetch(resource_id)
            except LoadError as e:
                logger.debug(f"{type(loader).__name__} could not load {resource_id}: {e}")
                errors.append(str(e))
        raise LoadError(f"No loader could fetch {resource_id}", resource_id, {'errors': errors})
