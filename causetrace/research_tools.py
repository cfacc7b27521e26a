"""
Research Tools for the Causal Chain Builder

Wraps the search and scrape backends as LangChain tools so they can be bound to
the agent model, and executes the calls the model requests. Each trace builds
its own adapter; nothing here is shared between traces.
"""

import json
from typing import Any, Dict, List, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from causetrace.config import FIRECRAWL_API_KEY, logger
from causetrace.exceptions import ToolFailure
from causetrace.research import ExaSearchClient, FirecrawlClient, PageScraper


# Pydantic models for tool arguments
class SearchMedicalResearchInput(BaseModel):
    """Input schema for search_medical_research tool."""
    query: str = Field(description="Search query about SCD symptoms, mechanisms, triggers or treatments")


class ScrapeArticleInput(BaseModel):
    """Input schema for scrape_article tool."""
    url: str = Field(description="URL of the article or research paper to read in full")


TOOL_DISPLAY_NAMES = {
    "search_medical_research": "Searching medical research",
    "scrape_article": "Reading article",
}
TOOL_INPUT_FIELDS = {
    "search_medical_research": "query",
    "scrape_article": "url",
}


class ResearchToolAdapter:
    """Uniform request/response wrapper around the two research tools."""

    def __init__(self, searcher: Optional[ExaSearchClient] = None, scraper=None):
        self.searcher = searcher or ExaSearchClient()
        if scraper is None:
            scraper = FirecrawlClient() if FIRECRAWL_API_KEY else PageScraper()
        self.scraper = scraper

        self.tools: List[StructuredTool] = [
            StructuredTool.from_function(
                func=self._search_medical_research,
                name="search_medical_research",
                description=(
                    "Search for medical research and sickle cell disease information relevant to the patient's symptoms. "
                    "Returns a JSON list of results with title, url and an excerpt."
                ),
                args_schema=SearchMedicalResearchInput,
                handle_validation_error=True,
            ),
            StructuredTool.from_function(
                func=self._scrape_article,
                name="scrape_article",
                description=(
                    "Scrape the full content of a medical article or research paper for detailed information. "
                    "Use it on promising URLs returned by search_medical_research."
                ),
                args_schema=ScrapeArticleInput,
                handle_validation_error=True,
            ),
        ]
        self._tools_by_name = {tool.name: tool for tool in self.tools}

    def _search_medical_research(self, query: str) -> str:
        if not query or query.strip() == "":
            return "Error: Query cannot be empty. Please provide a specific search query."
        results = self.searcher.search(query)
        if not results:
            return f"No results found for query: '{query}'. Try rephrasing or broadening your search."
        return json.dumps([result.to_wire() for result in results], indent=2)

    def _scrape_article(self, url: str) -> str:
        content = self.scraper.scrape(url)
        return content or f"No content could be extracted from {url}"

    @staticmethod
    def display_name(name: str) -> str:
        return TOOL_DISPLAY_NAMES.get(name, name)

    @staticmethod
    def describe_input(name: str, args: Dict[str, Any]) -> str:
        """The human-readable input string that identifies a call on the stream."""
        field = TOOL_INPUT_FIELDS.get(name)
        if field and isinstance(args.get(field), str):
            return args[field]
        return json.dumps(args, sort_keys=True)

    def execute(self, name: str, args: Dict[str, Any]) -> str:
        """
        Run one tool call requested by the model.

        Always returns a string for the model: tool failures and unknown tools
        are reported back as error text so the research loop can continue.
        """
        tool = self._tools_by_name.get(name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {name}")
            return json.dumps({"error": f"Unknown tool: {name}"})
        try:
            return tool.invoke(args)
        except ToolFailure as e:
            logger.warning(f"Tool {name} failed for {self.describe_input(name, args)!r}: {e}")
            return json.dumps({"error": f"{name} failed: {e}"})
        except Exception as e:
            logger.warning(f"Tool {name} raised unexpectedly for {self.describe_input(name, args)!r}: {e!r}")
            return json.dumps({"error": f"{name} failed: {e}"})
