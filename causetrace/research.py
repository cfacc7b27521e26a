"""
Research Backends
Search and scrape clients behind the chain builder's research tools.
"""

from typing import List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from causetrace.config import (
    EXA_API_KEY,
    FIRECRAWL_API_KEY,
    SCRAPE_MAX_CHARS,
    SEARCH_MAX_CHARACTERS,
    SEARCH_MAX_RESULTS,
    TOOL_TIMEOUT,
)
from causetrace.exceptions import ToolFailure
from causetrace.schemas import SearchResult


def _request(method: str, url: str, tool: str, **kwargs) -> requests.Response:
    """Issue an HTTP request and map every failure mode onto ToolFailure."""
    try:
        response = requests.request(method, url, **kwargs)
        response.raise_for_status()
        return response
    except requests.exceptions.Timeout as e:
        raise ToolFailure(f"{tool} timeout after {kwargs.get('timeout')}s", stage="chains") from e
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "unknown"
        raise ToolFailure(f"{tool} returned HTTP {status}", stage="chains") from e
    except requests.exceptions.RequestException as e:
        raise ToolFailure(f"{tool} request error: {e}", stage="chains") from e


def _json_body(response: requests.Response, tool: str) -> dict:
    """Decode a JSON object body; anything else is a ToolFailure."""
    try:
        body = response.json()
    except ValueError as e:
        raise ToolFailure(f"{tool} returned a non-JSON body", stage="chains") from e
    if not isinstance(body, dict):
        raise ToolFailure(f"{tool} returned an unexpected body", stage="chains")
    return body


class ExaSearchClient:
    """Client for the Exa neural search API."""

    BASE_URL = "https://api.exa.ai/search"

    def __init__(
        self,
        api_key: Optional[str] = EXA_API_KEY,
        max_results: int = SEARCH_MAX_RESULTS,
        max_characters: int = SEARCH_MAX_CHARACTERS,
        timeout: float = TOOL_TIMEOUT,
    ):
        self.api_key = api_key
        self.max_results = max_results
        self.max_characters = max_characters
        self.timeout = timeout

    def search(self, query: str) -> List[SearchResult]:
        """
        Search the web for research relevant to a query.

        Args:
            query: Free-text search query

        Returns:
            At most max_results results with title, url and a text excerpt
        """
        if not self.api_key:
            raise ToolFailure("EXA_API_KEY not set", stage="chains")

        response = _request(
            "POST",
            self.BASE_URL,
            "Exa search",
            headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
            json={
                "query": query,
                "type": "auto",
                "numResults": self.max_results,
                "contents": {"text": {"maxCharacters": self.max_characters}},
            },
            timeout=self.timeout,
        )
        results = _json_body(response, "Exa search").get("results") or []
        return [
            SearchResult(title=r.get("title") or "", url=r.get("url") or "", excerpt=r.get("text") or "")
            for r in results[:self.max_results]
        ]


class FirecrawlClient:
    """Client for the Firecrawl scrape API (markdown output)."""

    BASE_URL = "https://api.firecrawl.dev/v1/scrape"

    def __init__(self, api_key: Optional[str] = FIRECRAWL_API_KEY, max_chars: int = SCRAPE_MAX_CHARS, timeout: float = TOOL_TIMEOUT):
        self.api_key = api_key
        self.max_chars = max_chars
        self.timeout = timeout

    def scrape(self, url: str) -> str:
        if not self.api_key:
            raise ToolFailure("FIRECRAWL_API_KEY not set", stage="chains")

        response = _request(
            "POST",
            self.BASE_URL,
            "Firecrawl scrape",
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={"url": url, "formats": ["markdown"], "onlyMainContent": True},
            timeout=self.timeout,
        )
        markdown = (_json_body(response, "Firecrawl scrape").get("data") or {}).get("markdown") or ""
        return markdown[:self.max_chars]


class PageScraper:
    """
    Direct page fetch used when no Firecrawl key is configured.

    Identifies the main content area of common medical sites and strips
    navigation, ads and scripts before returning plain text.
    """

    HEADERS = {
        'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
    }
    UNWANTED_TAGS = ['script', 'style', 'nav', 'header', 'footer', 'aside', 'iframe', 'noscript', 'button', 'form']
    UNWANTED_SELECTORS = [
        '.navigation', '.nav', '.menu', '.sidebar', '.advertisement',
        '.ad', '.social-share', '.related-links', '.breadcrumb',
        '#navigation', '#sidebar', '#comments', '.comments'
    ]
    CONTENT_SELECTORS = {
        'medlineplus.gov': ['#mplus-content', '#topic-summary', '.main-content', 'article'],
        'mayoclinic.org': ['.content', 'article', '.main-content', '[role="main"]'],
        'ncbi.nlm.nih.gov': ['.article', '#main-content', 'article', 'main'],
        'nih.gov': ['#content', 'article', '.main-content', 'main'],
        'cdc.gov': ['#content', 'article', '.syndicate', 'main'],
        'hematology.org': ['article', '.content', 'main'],
    }
    GENERIC_SELECTORS = ['article', 'main', '[role="main"]', '.content', '#content', '.main-content']

    def __init__(self, max_chars: int = SCRAPE_MAX_CHARS, timeout: float = TOOL_TIMEOUT):
        self.max_chars = max_chars
        self.timeout = timeout

    def _selectors_for(self, domain: str) -> List[str]:
        for site_domain, site_selectors in self.CONTENT_SELECTORS.items():
            if site_domain in domain:
                return site_selectors
        return self.GENERIC_SELECTORS

    def scrape(self, url: str) -> str:
        response = _request("GET", url, "Page fetch", headers=self.HEADERS, timeout=self.timeout, allow_redirects=True)
        soup = BeautifulSoup(response.content, 'html.parser')
        domain = urlparse(url).netloc.lower()

        title_tag = soup.find('title')
        title = title_tag.get_text().strip() if title_tag else "Untitled"

        for element in soup(self.UNWANTED_TAGS):
            element.decompose()
        for selector in self.UNWANTED_SELECTORS:
            for element in soup.select(selector):
                element.decompose()

        main_content = None
        for selector in self._selectors_for(domain):
            main_content = soup.select_one(selector)
            if main_content:
                break
        if not main_content:
            main_content = soup.find('body') or soup

        # Drop blank and repeated short lines (menus repeated in page chrome)
        seen_lines = set()
        unique_lines = []
        for line in main_content.get_text(separator='\n', strip=True).split('\n'):
            line = line.strip()
            if not line:
                continue
            if line not in seen_lines or len(line) > 100:
                unique_lines.append(line)
                seen_lines.add(line)

        markdown = f"# {title}\n\n" + "\n".join(unique_lines)
        return markdown[:self.max_chars]
