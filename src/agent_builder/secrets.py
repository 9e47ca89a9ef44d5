"""Loading of externally managed secrets with an explicit TTL cache."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import SecretsConfig
from .errors import ErrorKind, ServiceError


LOGGER = logging.getLogger("agent_builder.secrets")

OPENAI_API_KEY = "openai-api-key"
_SSM_BATCH_SIZE = 10


class SecretCache:
    """Values keyed by parameter name that expire ``ttl_seconds`` after being stored."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, name: str) -> Optional[str]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[name]
            return None
        return value

    def put(self, name: str, value: str) -> None:
        self._entries[name] = (value, self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ParameterSource(Protocol):
    def fetch(self, names: Sequence[str]) -> Dict[str, str]:
        """Return the values that exist for ``names``; missing names are left out."""


class EnvironmentParameterSource:
    """Reads ``/prefix/openai-api-key`` from the ``OPENAI_API_KEY`` environment variable."""

    def __init__(self, environ: Optional[Dict[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    @staticmethod
    def variable_for(name: str) -> str:
        return name.rsplit("/", 1)[-1].upper().replace("-", "_")

    def fetch(self, names: Sequence[str]) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for name in names:
            value = self._environ.get(self.variable_for(name))
            if value:
                found[name] = value
        return found


class SsmParameterSource:
    """AWS Systems Manager Parameter Store, fetched in batches with decryption."""

    def __init__(self, client: Any = None, region: Optional[str] = None) -> None:
        if client is None:
            kwargs: Dict[str, Any] = {}
            if region:
                kwargs["region_name"] = region
            client = boto3.client("ssm", **kwargs)
        self._client = client

    def fetch(self, names: Sequence[str]) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for batch in _batches(names, _SSM_BATCH_SIZE):
            try:
                response = self._client.get_parameters(Names=batch, WithDecryption=True)
            except (BotoCoreError, ClientError) as exc:
                raise ServiceError.unavailable("Parameter store request failed", parameters=batch) from exc
            for parameter in response.get("Parameters", []):
                found[parameter["Name"]] = parameter["Value"]
            invalid = response.get("InvalidParameters") or []
            if invalid:
                LOGGER.warning("Parameters not found in SSM: %s", ", ".join(invalid))
        return found


def _batches(names: Sequence[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(names), size):
        yield list(names[start : start + size])


class SecretsLoader:
    """Resolve secrets by key under ``{prefix}/{environment}`` through a cache it owns."""

    def __init__(self, source: ParameterSource, cache: SecretCache, prefix: str) -> None:
        self._source = source
        self.cache = cache
        self.prefix = prefix.rstrip("/")

    @classmethod
    def from_config(cls, config: SecretsConfig) -> "SecretsLoader":
        if config.source == "ssm":
            source: ParameterSource = SsmParameterSource(region=config.region)
        else:
            source = EnvironmentParameterSource()
        prefix = f"{config.parameter_prefix.rstrip('/')}/{config.environment}"
        return cls(source, SecretCache(ttl_seconds=config.cache_ttl_seconds), prefix)

    def parameter_name(self, key: str) -> str:
        return f"{self.prefix}/{key}"

    def get(self, key: str) -> str:
        return self.get_many([key])[key]

    def get_many(self, keys: Sequence[str]) -> Dict[str, str]:
        names = {key: self.parameter_name(key) for key in keys}
        values: Dict[str, str] = {}
        missing: List[str] = []
        for key, name in names.items():
            cached = self.cache.get(name)
            if cached is None:
                missing.append(name)
            else:
                values[key] = cached
        if missing:
            fetched = self._source.fetch(missing)
            for key, name in names.items():
                if name in fetched:
                    self.cache.put(name, fetched[name])
                    values[key] = fetched[name]
        absent = [names[key] for key in keys if key not in values]
        if absent:
            raise ServiceError(ErrorKind.INTERNAL, "Required parameters are not configured", {"parameters": absent})
        return values

    def openai_api_key(self) -> str:
        return self.get(OPENAI_API_KEY)

    def clear_cache(self) -> None:
        self.cache.clear()


__all__ = [
    "EnvironmentParameterSource",
    "OPENAI_API_KEY",
    "ParameterSource",
    "SecretCache",
    "SecretsLoader",
    "SsmParameterSource",
]
