from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import httpx

from .cache import DEFAULT_CACHE_TIMEOUT_S, TTLCache
from .config import DEFAULT_TIMEOUT_S
from .github import GitHubClient
from .models import FetchResult, RepositoryDescriptor, RepositoryFailure, Resolution, Skill
from .resolver import RepositoryResolver

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Resolves every configured repository concurrently and merges the skills.

    A repository is the unit of fault isolation: one failing repository turns
    into a RepositoryFailure entry and never hides the others' skills.
    """

    def __init__(
        self,
        cache: TTLCache | None = None,
        *,
        max_concurrency: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.cache = cache if cache is not None else TTLCache()
        self.max_concurrency = max_concurrency
        self._transport = transport

    def client(self, *, token: str | None = None, timeout_s: float = DEFAULT_TIMEOUT_S) -> GitHubClient:
        return GitHubClient(token=token, timeout_s=timeout_s, transport=self._transport)

    async def fetch_all(
        self,
        descriptors: Iterable[RepositoryDescriptor],
        *,
        cache_timeout_s: float = DEFAULT_CACHE_TIMEOUT_S,
        token: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> FetchResult:
        descriptors = list(descriptors)
        if not descriptors:
            return FetchResult(skills=())

        async with self.client(token=token, timeout_s=timeout_s) as client:
            resolver = RepositoryResolver(client, self.cache, cache_timeout_s=cache_timeout_s)
            semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

            async def _one(descriptor: RepositoryDescriptor) -> Resolution:
                if semaphore is None:
                    return await resolver.resolve(descriptor)
                async with semaphore:
                    return await resolver.resolve(descriptor)

            outcomes = await asyncio.gather(*(_one(d) for d in descriptors), return_exceptions=True)

        skills: list[Skill] = []
        failures: list[RepositoryFailure] = []
        warnings: list[str] = []
        for descriptor, outcome in zip(descriptors, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Failed to fetch skills from %s: %s", descriptor.key, outcome)
                failures.append(RepositoryFailure(descriptor=descriptor, reason=str(outcome)))
                continue
            skills.extend(outcome.skills)
            warnings.extend(outcome.warnings)

        return FetchResult(skills=tuple(skills), failures=tuple(failures), warnings=tuple(warnings))
