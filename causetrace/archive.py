"""
Trace Archive
Formats a finished trace as a markdown note and files it in a notes vault
exposed through a Local REST API (Obsidian-compatible).
"""

import re
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

import requests

from causetrace.config import TOOL_TIMEOUT, VAULT_API_KEY, VAULT_FOLDER, VAULT_URL, logger
from causetrace.exceptions import PersistenceFailure
from causetrace.schemas import TraceResult

URGENCY_BADGES = {"urgent": "🔴", "discuss": "🟡", "info": "🔵"}


def symptom_title(result: TraceResult) -> str:
    """Short human title for a trace: its symptom list, or the raw input."""
    if result.symptoms is not None and result.symptoms.symptoms:
        return ", ".join(symptom.text for symptom in result.symptoms.symptoms)
    return result.input_text


def format_trace_markdown(result: TraceResult, created_at: Optional[datetime] = None) -> str:
    """Format the full trace (input, reasoning, chains, summary, suggestions) as one document."""
    created_at = created_at or datetime.now(timezone.utc)
    lines: List[str] = [
        "# TRACE Analysis",
        "",
        f"**Symptoms:** {symptom_title(result)}",
        f"**Input:** {result.input_text}",
        f"**Date:** {created_at.isoformat()}",
        "",
        "## Thinking",
        "",
        result.thinking or "_No extended thinking captured._",
        "",
        "## Causal Chains",
        "",
    ]

    for chain in result.chains:
        lines.append(f"### {chain.label} (confidence: {round(chain.overall_confidence * 100)}%)")
        lines.append("")
        for node in chain.nodes:
            lines.append(f"- **[{node.type}]** {node.title}: {node.description}")
            for citation in node.citations or []:
                link = f" ({citation.url})" if citation.url else ""
                lines.append(f"  - _{citation.title}_, {citation.source}{link}")
        lines.append("")

    lines.extend(["## Summary", "", result.summary, "", "## Suggestions", ""])
    for suggestion in result.suggestions:
        audience = "(for doctor)" if suggestion.for_doctor else "(for patient)"
        lines.append(f"- {URGENCY_BADGES[suggestion.urgency]} {suggestion.text} {audience}")

    return "\n".join(lines)


class VaultArchive:
    """Archival sink writing markdown notes into a vault folder."""

    def __init__(
        self,
        base_url: str = VAULT_URL,
        api_key: Optional[str] = VAULT_API_KEY,
        folder: str = VAULT_FOLDER,
        timeout: float = TOOL_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.folder = folder
        self.timeout = timeout

    def note_path(self, title: str, day: Optional[str] = None) -> str:
        day = day or datetime.now(timezone.utc).date().isoformat()
        safe_name = re.sub(r"[^a-zA-Z0-9 -]", "", title)[:60].strip() or "Untitled"
        return f"{self.folder}/{day} - {safe_name}.md"

    def save(self, title: str, markdown: str) -> bool:
        """
        Write a note to the vault.

        Returns:
            True when the vault accepted the note, False on a non-2xx response

        Raises:
            PersistenceFailure: Missing credentials or the vault is unreachable
        """
        if not self.api_key:
            raise PersistenceFailure("VAULT_API_KEY not set", stage="persisting")

        path = self.note_path(title)
        try:
            response = requests.put(
                f"{self.base_url}/vault/{quote(path)}",
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "text/markdown"},
                data=markdown.encode("utf-8"),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PersistenceFailure(f"Vault unreachable: {e}", stage="persisting") from e

        if not response.ok:
            logger.error(f"Vault save failed for {path!r}: HTTP {response.status_code}")
            return False
        logger.info(f"Archived trace note {path!r}")
        return True
