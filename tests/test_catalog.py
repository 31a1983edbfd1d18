import asyncio
import unittest

from agentskills.aggregator import Aggregator
from agentskills.catalog import Catalog, group_by_source, search
from agentskills.config import Config
from agentskills.models import FetchResult, RepositoryDescriptor, Skill

from fakes import FakeGitHub, skill_md

ONE = RepositoryDescriptor("one", "repo", "skills", "main")
TWO = RepositoryDescriptor("two", "repo", "skills", "main")


def _skill(name: str, source: RepositoryDescriptor = ONE, description: str = "") -> Skill:
    return Skill(name=name, description=description, source=source, skill_path=f"skills/{name}")


class ControlledAggregator:
    """Aggregator stand-in whose refreshes finish only when the test says so."""

    def __init__(self) -> None:
        self.pending: list[asyncio.Future] = []

    async def fetch_all(self, descriptors, **kwargs) -> FetchResult:
        fut = asyncio.get_running_loop().create_future()
        self.pending.append(fut)
        return await fut


class TestCatalogRefresh(unittest.IsolatedAsyncioTestCase):
    async def test_refresh_reads_config_each_time(self) -> None:
        fake = FakeGitHub(
            {
                ("one", "repo", "main", "skills/a/SKILL.md"): skill_md("a", "A"),
                ("two", "repo", "main", "skills/b/SKILL.md"): skill_md("b", "B"),
            }
        )
        configs = [Config(repositories=(ONE,)), Config(repositories=(ONE, TWO), github_token="tok")]
        catalog = Catalog(Aggregator(transport=fake.transport()), config_loader=lambda: configs.pop(0))

        self.assertTrue(await catalog.refresh())
        self.assertEqual([s.name for s in catalog.skills], ["a"])

        self.assertTrue(await catalog.refresh())
        self.assertEqual(sorted(s.name for s in catalog.skills), ["a", "b"])
        self.assertEqual(catalog.generation, 2)
        self.assertIn("Bearer tok", fake.auth_headers)

    async def test_stale_refresh_does_not_overwrite_newer_result(self) -> None:
        aggregator = ControlledAggregator()
        catalog = Catalog(aggregator, config_loader=Config)  # type: ignore[arg-type]

        slow = asyncio.create_task(catalog.refresh())
        await asyncio.sleep(0)
        fast = asyncio.create_task(catalog.refresh())
        await asyncio.sleep(0)
        self.assertEqual(len(aggregator.pending), 2)

        aggregator.pending[1].set_result(FetchResult(skills=(_skill("fresh"),)))
        self.assertTrue(await fast)
        aggregator.pending[0].set_result(FetchResult(skills=(_skill("stale"),)))
        self.assertFalse(await slow)

        self.assertEqual([s.name for s in catalog.skills], ["fresh"])
        self.assertEqual(catalog.generation, 2)


class TestCatalogQueries(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = Catalog(Aggregator(), config_loader=Config)
        self.catalog.apply(
            1,
            FetchResult(
                skills=(
                    _skill("pdf", description="Work with PDF files"),
                    _skill("docx", TWO, description="Word documents"),
                    _skill("pdf", TWO, description="Another pdf"),
                )
            ),
        )

    def test_installed_matches_by_name(self) -> None:
        self.catalog.set_installed({"pdf"})

        self.assertTrue(self.catalog.is_installed(self.catalog.skills[0]))
        self.assertTrue(self.catalog.is_installed(self.catalog.skills[2]))
        self.assertFalse(self.catalog.is_installed(self.catalog.skills[1]))

    def test_get_returns_first_match(self) -> None:
        self.assertEqual(self.catalog.get("pdf").source, ONE)
        self.assertIsNone(self.catalog.get("nope"))

    def test_search_matches_name_or_description(self) -> None:
        self.assertEqual([s.name for s in self.catalog.search("WORD")], ["docx"])
        self.assertEqual(len(self.catalog.search("pdf")), 2)
        self.assertEqual(len(self.catalog.search("  ")), 3)
        self.assertEqual(search([], "x"), [])

    def test_group_by_source_keeps_first_seen_order(self) -> None:
        groups = group_by_source(self.catalog.skills)

        self.assertEqual(list(groups), ["one/repo", "two/repo"])
        self.assertEqual([s.name for s in groups["two/repo"]], ["docx", "pdf"])

    def test_older_generation_is_ignored(self) -> None:
        self.assertFalse(self.catalog.apply(1, FetchResult(skills=())))
        self.assertEqual(len(self.catalog.skills), 3)


if __name__ == "__main__":
    unittest.main()
