"""Local caching for flow samples."""
import json
import os
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .models import FlowSample


class FlowSampleCache:
    """Local cache of flow samples using SQLite.

    Keeps a copy of every sample handed to the InfluxDB sink so that a failed
    write does not lose the reading.
    """

    def __init__(self, cache_dir: Optional[str] = None):
        """Initialize the cache.

        Args:
            cache_dir: Directory to store cache files. Defaults to ~/.waterdash_cache
        """
        if cache_dir is None:
            cache_dir = os.path.expanduser("~/.waterdash_cache")

        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.db_path = self.cache_dir / "cache.db"
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS flow_samples (
                site TEXT,
                timestamp TEXT,
                data TEXT,
                PRIMARY KEY (site, timestamp)
            )
        """)

        conn.commit()
        conn.close()

    def store(self, site: str, sample: FlowSample) -> None:
        """Store a flow sample, replacing any sample with the same timestamp.

        Args:
            site: Site the sample was read from
            sample: The sample to keep
        """
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute(
            "INSERT OR REPLACE INTO flow_samples (site, timestamp, data) VALUES (?, ?, ?)",
            (site, sample.observed_at.isoformat(), json.dumps(sample.model_dump(mode="json")))
        )

        conn.commit()
        conn.close()

    def get(self, site: str, timestamp: datetime) -> Optional[FlowSample]:
        """Get the sample stored for a site at an exact timestamp."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT data FROM flow_samples WHERE site = ? AND timestamp = ?",
            (site, timestamp.isoformat())
        )

        row = cursor.fetchone()
        conn.close()

        if row:
            return FlowSample.model_validate(json.loads(row[0]))
        return None

    def get_recent(self, site: str, hours: int = 24) -> List[Tuple[datetime, FlowSample]]:
        """Get recent samples for a site.

        Args:
            site: Site the samples were read from
            hours: Number of hours of data to retrieve

        Returns:
            List of (timestamp, sample) tuples, newest first
        """
        conn = self._connect()
        cursor = conn.cursor()

        cutoff = (datetime.now() - timedelta(hours=hours)).isoformat()

        cursor.execute(
            """
            SELECT timestamp, data
            FROM flow_samples
            WHERE site = ? AND timestamp > ?
            ORDER BY timestamp DESC
            """,
            (site, cutoff)
        )

        results = []
        for row in cursor.fetchall():
            data: Dict[str, Any] = json.loads(row[1])
            results.append((datetime.fromisoformat(row[0]), FlowSample.model_validate(data)))

        conn.close()
        return results

    def cleanup(self, max_age_hours: int = 24) -> int:
        """Remove old samples from the cache.

        Args:
            max_age_hours: Maximum age of samples to keep in hours

        Returns:
            Number of samples removed
        """
        conn = self._connect()
        cursor = conn.cursor()

        cutoff = (datetime.now() - timedelta(hours=max_age_hours)).isoformat()

        cursor.execute(
            "DELETE FROM flow_samples WHERE timestamp < ?",
            (cutoff,)
        )
        removed = cursor.rowcount

        conn.commit()
        conn.close()
        return removed
