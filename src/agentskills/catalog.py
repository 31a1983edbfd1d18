from __future__ import annotations

import itertools
from typing import Callable, Iterable

from .aggregator import Aggregator
from .config import Config, load_config
from .models import FetchResult, Skill


def search(skills: Iterable[Skill], query: str) -> list[Skill]:
    q = query.strip().lower()
    if not q:
        return list(skills)
    return [s for s in skills if q in s.name.lower() or q in s.description.lower()]


def group_by_source(skills: Iterable[Skill]) -> dict[str, list[Skill]]:
    groups: dict[str, list[Skill]] = {}
    for skill in skills:
        groups.setdefault(skill.source.key, []).append(skill)
    return groups


class Catalog:
    """
    Latest known marketplace state.

    Overlapping refreshes are ordered by a generation number taken when each
    refresh starts; a result is applied only if no newer refresh has already
    been applied, so a slow stale refresh cannot overwrite fresher data.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        *,
        config_loader: Callable[[], Config] = load_config,
    ) -> None:
        self.aggregator = aggregator
        self.config_loader = config_loader
        self._generations = itertools.count(1)
        self._applied_generation = 0
        self._result = FetchResult(skills=())
        self._installed: frozenset[str] = frozenset()

    @property
    def skills(self) -> tuple[Skill, ...]:
        return self._result.skills

    @property
    def last_result(self) -> FetchResult:
        return self._result

    @property
    def generation(self) -> int:
        return self._applied_generation

    async def refresh(self) -> bool:
        generation = next(self._generations)
        cfg = self.config_loader()
        result = await self.aggregator.fetch_all(
            cfg.repositories,
            cache_timeout_s=cfg.cache_timeout_s,
            token=cfg.github_token,
            timeout_s=cfg.timeout_s,
        )
        return self.apply(generation, result)

    def apply(self, generation: int, result: FetchResult) -> bool:
        if generation <= self._applied_generation:
            return False
        self._applied_generation = generation
        self._result = result
        return True

    def set_installed(self, names: Iterable[str]) -> None:
        self._installed = frozenset(names)

    def is_installed(self, skill: Skill) -> bool:
        return skill.name in self._installed

    def get(self, name: str) -> Skill | None:
        for skill in self.skills:
            if skill.name == name:
                return skill
        return None

    def search(self, query: str) -> list[Skill]:
        return search(self.skills, query)
