"""InfluxDB configuration and storage utilities."""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from influxdb import InfluxDBClient

from .models import Reading, TimeRange

logger = logging.getLogger(__name__)

MEASUREMENT = "plc_readings"
DEFAULT_SOURCE_TAG = "plc_s7_1200"

# Channel groups served by the history queries, keyed by category
DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    "temperature": [f"T{i}" for i in range(1, 11)],
    "humidity": ["H1", "H2"],
    "airflow": ["Air_Speed"],
}

# History response key for each category
HISTORY_KEYS = {
    "temperature": "temperatures",
    "humidity": "humidity",
    "airflow": "airSpeed",
}


@dataclass
class InfluxConfig:
    """InfluxDB connection configuration."""
    host: str = "localhost"
    port: int = 8086
    database: str = "plc_data"
    username: str = ""
    password: str = ""
    timeout: float = 5.0
    retention_policy: str = "one_month"
    retention_duration: str = "30d"

    @classmethod
    def from_env(cls) -> "InfluxConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("INFLUX_HOST", "localhost"),
            port=int(os.getenv("INFLUX_PORT", "8086")),
            database=os.getenv("INFLUX_DATABASE", "plc_data"),
            username=os.getenv("INFLUX_USERNAME", ""),
            password=os.getenv("INFLUX_PASSWORD", ""),
            timeout=float(os.getenv("INFLUX_TIMEOUT", "5")),
            retention_duration=os.getenv("INFLUX_RETENTION", "30d"),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    """Format a datetime as an RFC3339 UTC literal for InfluxQL."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _epoch_ms_to_iso(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


class ReadingsStorage:
    """Manages storage and retrieval of PLC readings in InfluxDB.

    Every public method logs and degrades to an empty/failed result when the
    store is unreachable; callers decide what a failure means.
    """

    def __init__(
        self,
        influx_config: InfluxConfig,
        categories: Optional[Dict[str, List[str]]] = None,
        source_tag: str = DEFAULT_SOURCE_TAG,
        clock: Optional[Callable[[], datetime]] = None,
        client: Optional[InfluxDBClient] = None,
    ):
        """Initialize storage with database configuration.

        Args:
            influx_config: InfluxDB connection configuration.
            categories: Channel names per query category.
            source_tag: Value of the 'source' tag written with every point.
            clock: Returns the current time; relative ranges end here.
            client: Pre-built client, mainly for tests.
        """
        self.influx_config = influx_config
        self.categories = categories or DEFAULT_CATEGORIES
        self.source_tag = source_tag
        self.clock = clock or _utcnow
        self._client = client
        self._initialized = False
        # cycle writes and history queries run on different executor threads
        self._client_lock = threading.Lock()

    def _get_client(self) -> InfluxDBClient:
        """Get or create the InfluxDB client."""
        with self._client_lock:
            if self._client is None:
                self._client = InfluxDBClient(
                    host=self.influx_config.host,
                    port=self.influx_config.port,
                    username=self.influx_config.username or None,
                    password=self.influx_config.password or None,
                    database=self.influx_config.database,
                    timeout=self.influx_config.timeout,
                )
            return self._client

    def ensure_database(self) -> bool:
        """Create the database and retention policy if they don't exist.

        Only the first successful call talks to the server.

        Returns:
            True if the database is ready, False otherwise.
        """
        if self._initialized:
            return True

        database = self.influx_config.database
        try:
            client = self._get_client()
            version = client.ping()
            logger.info(f"Connected to InfluxDB {version} at {self.influx_config.host}:{self.influx_config.port}")

            existing = {db["name"] for db in client.get_list_database()}
            if database not in existing:
                logger.info(f"Creating InfluxDB database: {database}")
                client.create_database(database)
                client.create_retention_policy(
                    self.influx_config.retention_policy,
                    self.influx_config.retention_duration,
                    1,
                    database=database,
                    default=True,
                )
                logger.info(
                    f"Created retention policy {self.influx_config.retention_policy} "
                    f"({self.influx_config.retention_duration})"
                )
        except Exception as e:
            logger.error(f"Error initializing InfluxDB database {database}: {e}")
            return False

        self._initialized = True
        return True

    def write(self, reading: Reading, tags: Optional[Dict[str, str]] = None) -> bool:
        """Store a single reading as one point.

        Args:
            reading: The reading to store.
            tags: Extra tags merged over the default 'source' tag.

        Returns:
            True if successful, False otherwise.
        """
        if not reading.channels:
            logger.warning("Reading has no channels, nothing to store")
            return False

        if not self.ensure_database():
            logger.error("Database initialization failed, cannot store reading")
            return False

        point = {
            "measurement": MEASUREMENT,
            "tags": {"source": self.source_tag, **(tags or {})},
            "time": reading.timestamp,
            "fields": {name: float(value) for name, value in reading.channels.items()},
        }

        try:
            self._get_client().write_points([point], time_precision="ms")
        except Exception as e:
            logger.error(f"Error storing reading at {reading.timestamp.isoformat()}: {e}")
            # The database may have been dropped underneath us; re-check next time
            self._initialized = False
            return False

        logger.debug(f"Stored {len(point['fields'])} fields at {reading.timestamp.isoformat()}")
        return True

    def query_range(self, category: str, time_range: TimeRange) -> List[Dict]:
        """Get the readings of one channel category within a time range.

        Args:
            category: One of the configured categories (e.g. 'temperature').
            time_range: Relative or absolute range; relative ranges end at clock().

        Returns:
            Records ordered by ascending time. Channels with no data are None.

        Raises:
            ValueError: If the category is unknown.
        """
        if category not in self.categories:
            raise ValueError(f"Unknown category: {category}")

        channels = self.categories[category]
        if not channels:
            return []

        if not self.ensure_database():
            logger.error("Database initialization failed, cannot query history")
            return []

        start, end = time_range.bounds(self.clock())
        columns = ", ".join(f'"{name}"' for name in channels)
        query = (
            f"SELECT {columns} FROM {MEASUREMENT} "
            f"WHERE time >= '{_format_time(start)}' AND time <= '{_format_time(end)}' "
            f"ORDER BY time ASC"
        )
        logger.debug(f"{category} query: {query}")

        try:
            result = self._get_client().query(query, epoch="ms")
            points = sorted(result.get_points(), key=lambda p: p["time"])
        except Exception as e:
            logger.error(f"Error fetching {category} history: {e}")
            return []

        return [
            {
                "time": _epoch_ms_to_iso(point["time"]),
                **{name: point.get(name) for name in channels},
            }
            for point in points
        ]

    def get_history(self, time_range: TimeRange) -> Dict[str, List[Dict]]:
        """Get every category's history keyed the way the dashboard expects.

        Returns:
            Dict with 'temperatures', 'humidity' and 'airSpeed' lists.
        """
        history = {}
        for category in self.categories:
            key = HISTORY_KEYS.get(category, category)
            history[key] = self.query_range(category, time_range)

        logger.info(
            "Fetched history: "
            + ", ".join(f"{key}={len(records)}" for key, records in history.items())
        )
        return history

    def get_latest(self) -> Optional[Dict]:
        """Get the most recent stored point.

        Returns:
            The latest point, or None if there is none or the query failed.
        """
        if not self.ensure_database():
            return None

        try:
            result = self._get_client().query(
                f"SELECT * FROM {MEASUREMENT} ORDER BY time DESC LIMIT 1", epoch="ms"
            )
            points = list(result.get_points())
        except Exception as e:
            logger.error(f"Error fetching latest reading: {e}")
            return None

        if not points:
            logger.info("No readings found in InfluxDB")
            return None

        latest = dict(points[0])
        latest["time"] = _epoch_ms_to_iso(latest["time"])
        return latest

    def close(self):
        """Close the database connection."""
        with self._client_lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()
        self._initialized = False
