"""Template and parameters document loader."""
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests
from rich.console import Console

from ..errors import MalformedSource, SourceUnavailable
from .schema import ParameterSchema, ParameterValuesDocument, TemplateDocument

console = Console(stderr=True)


def is_remote(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


@dataclass(frozen=True)
class LoadedSources:
    """A template together with its parameters file."""
    template: TemplateDocument
    values: ParameterValuesDocument

    @property
    def schema(self) -> Tuple[ParameterSchema, ...]:
        return self.template.schema


class TemplateSourceLoader:
    """Reads templates and parameters files from local paths or URLs."""

    def __init__(self, timeout: float = 30.0, cache_ttl: float = 0.0,
                 session: Optional[requests.Session] = None, debug: bool = False):
        """Initialize the loader.

        Args:
            timeout: Seconds to wait for a remote document.
            cache_ttl: Seconds a fetched document stays cached; 0 disables caching.
            session: HTTP session used for remote documents.
            debug: If True, print verbose debug information.
        """
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.session = session or requests.Session()
        self.debug = debug
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def load(self, template_location: str, parameters_location: Optional[str] = None,
             fresh: bool = False) -> LoadedSources:
        """Load a template and its parameters file concurrently.

        Args:
            template_location: Path or URL of the template.
            parameters_location: Path or URL of the parameters file, if any.
            fresh: If True, neither read nor populate the cache.

        Returns:
            LoadedSources: The validated template and parameter values.

        Raises:
            SourceUnavailable: If either document cannot be retrieved.
            MalformedSource: If either document is not a valid JSON object with ``parameters``.
        """
        with ThreadPoolExecutor(max_workers=2) as pool:
            template_future = pool.submit(self._read, template_location, fresh)
            values_future = pool.submit(self._read, parameters_location, fresh) if parameters_location else None
            template_body = template_future.result()
            values_body = values_future.result() if values_future else None

        try:
            template = TemplateDocument.from_body(template_location, template_body)
        except ValueError as e:
            raise MalformedSource(template_location, str(e))

        if values_body is None:
            return LoadedSources(template, ParameterValuesDocument())
        try:
            values = ParameterValuesDocument.from_body(parameters_location, values_body)
        except ValueError as e:
            raise MalformedSource(parameters_location, str(e))
        return LoadedSources(template, values)

    def _read(self, location: str, fresh: bool) -> Dict[str, Any]:
        if self.cache_ttl > 0 and not fresh:
            with self._lock:
                cached = self._cache.get(location)
            if cached and time.monotonic() - cached[0] < self.cache_ttl:
                if self.debug:
                    console.print(f"Debug: Using cached copy of {location}")
                return cached[1]

        raw = self._fetch(location) if is_remote(location) else self._read_file(location)
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedSource(location, f"not valid JSON: {e}")
        if not isinstance(data, dict):
            raise MalformedSource(location, "top-level JSON value must be an object")

        if self.cache_ttl > 0 and not fresh:
            with self._lock:
                self._cache[location] = (time.monotonic(), data)
        return data

    def _read_file(self, location: str) -> str:
        if self.debug:
            console.print(f"Debug: Reading {location}")
        try:
            # utf-8-sig tolerates the BOM some editors write into ARM files
            return Path(location).read_text(encoding='utf-8-sig')
        except UnicodeDecodeError as e:
            raise MalformedSource(location, f"not valid UTF-8: {e}")
        except OSError as e:
            raise SourceUnavailable(location, str(e))

    def _fetch(self, location: str) -> str:
        if self.debug:
            console.print(f"Debug: Fetching {location}")
        try:
            response = self.session.get(location, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise SourceUnavailable(location, f"{e.response.status_code} {e.response.reason}")
        except requests.exceptions.RequestException as e:
            raise SourceUnavailable(location, str(e))
        return response.text

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
