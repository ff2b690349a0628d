"""
Append-only plaintext search log.
"""
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()

# Characters that would break an entry across lines
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f\x85\u2028\u2029]")


def _escape_control(value: str) -> str:
    return CONTROL_CHARS.sub(lambda m: f"\\u{ord(m.group()):04x}", value)


class SearchLogger:
    """Writes one line per search to a local file."""

    def __init__(self, path: str):
        self.path = Path(path)

    @staticmethod
    def format_entry(
        *,
        user: Optional[str],
        query: str,
        ebay_url: Optional[str],
        craigslist_url: Optional[str],
        ebay_count: Optional[int],
        craigslist_count: Optional[int],
        timestamp: Optional[datetime] = None,
    ) -> str:
        timestamp = timestamp or datetime.now(timezone.utc)
        return " | ".join([
            f"[{timestamp.isoformat()}]",
            f"user={_escape_control(user or 'anonymous')}",
            f"query={_escape_control(json.dumps(query, ensure_ascii=False))}",
            f"ebay_url={ebay_url or 'N/A'}",
            f"craigslist_url={craigslist_url or 'N/A'}",
            f"ebay_results={ebay_count or 0}",
            f"craigslist_results={craigslist_count or 0}",
        ])

    def log_search(self, **fields) -> None:
        """Append a search entry; write errors are logged, not raised."""
        entry = self.format_entry(**fields)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(entry + "\n")
        except OSError as e:
            logger.error("Failed to write search log", path=str(self.path), error=str(e))
