"""
GH Archive service.
Ranks repositories by WatchEvent (star) count over a trailing window using
BigQuery's public githubarchive dataset.
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from google.cloud import bigquery

from config import Settings

logger = logging.getLogger(__name__)

STAR_EVENTS_QUERY = """
SELECT repo.name AS full_name, COUNT(*) AS star_count
FROM `githubarchive.day.20*`
WHERE _TABLE_SUFFIX BETWEEN @start_suffix AND @end_suffix
  AND type = 'WatchEvent'
GROUP BY full_name
ORDER BY star_count DESC
LIMIT @limit
"""


def table_suffix(day: date) -> str:
    """Suffix after the `20` table prefix, i.e. YYMMDD."""
    return day.strftime("%Y%m%d")[2:]


class GHArchiveService:
    """Thin wrapper around google-cloud-bigquery; the client is created on first use."""

    def __init__(self, settings: Settings, client=None):
        self.enabled = settings.bigquery_enabled or client is not None
        self.project_id = settings.gcp_project_id
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = bigquery.Client(project=self.project_id)
        return self._client

    def _run_query(self, start_suffix: str, end_suffix: str, limit: int) -> List[Tuple[str, int]]:
        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("start_suffix", "STRING", start_suffix),
                bigquery.ScalarQueryParameter("end_suffix", "STRING", end_suffix),
                bigquery.ScalarQueryParameter("limit", "INT64", limit),
            ]
        )
        rows = self._get_client().query(STAR_EVENTS_QUERY, job_config=job_config).result()
        return [(row["full_name"], int(row["star_count"])) for row in rows]

    async def top_starred(self, days: int, limit: int = 100, today: Optional[date] = None) -> List[Tuple[str, int]]:
        """(full_name, star events) for the `days` days before today, most starred first."""
        if not self.enabled:
            logger.warning("BigQuery is not configured (set GCP_PROJECT_ID or GOOGLE_APPLICATION_CREDENTIALS)")
            return []
        today = today or date.today()
        start = table_suffix(today - timedelta(days=days))
        end = table_suffix(today)
        logger.info("Querying GH Archive star events %s..%s", start, end)
        return await asyncio.to_thread(self._run_query, start, end, limit)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
