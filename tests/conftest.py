import pytest

from causetrace.research_tools import ResearchToolAdapter
from causetrace.schemas import SearchResult

from fakes import FakeScraper, FakeSearcher, RecordingArchive, RecordingStore


@pytest.fixture
def searcher():
    return FakeSearcher([
        SearchResult(title="Cold exposure and VOC", url="https://example.org/cold", excerpt="Cold triggers crises."),
    ])


@pytest.fixture
def scraper():
    return FakeScraper()


@pytest.fixture
def tools(searcher, scraper):
    return ResearchToolAdapter(searcher=searcher, scraper=scraper)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def archive():
    return RecordingArchive()
