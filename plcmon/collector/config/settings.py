from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import os

from dotenv import load_dotenv

from plcmon.shared.config import get_config_dir, get_config_path, get_log_level, load_yaml_config
from plcmon.shared.database import InfluxConfig

logger = logging.getLogger(__name__)

CATEGORIES = ("temperature", "humidity", "airflow")


@dataclass
class PLCConfig:
    driver: str = "s7"
    host: str = "192.168.0.1"
    port: int = 102
    rack: int = 0
    slot: int = 1
    # seconds; applied to connect, send and receive
    timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: dict) -> "PLCConfig":
        """Create config from dictionary."""
        return cls(
            driver=data.get("driver", "s7"),
            host=data.get("host", "192.168.0.1"),
            port=int(data.get("port", 102)),
            rack=int(data.get("rack", 0)),
            slot=int(data.get("slot", 1)),
            timeout=float(data.get("timeout", 5.0)),
        )


@dataclass
class ChannelConfig:
    address: str
    category: str

    def __post_init__(self):
        if self.category not in CATEGORIES:
            raise ValueError(f"Unknown channel category '{self.category}', expected one of {CATEGORIES}")


def default_channels() -> Dict[str, ChannelConfig]:
    """The S7-1200 data block layout the collector was commissioned with."""
    channels = {
        f"T{i}": ChannelConfig(address=f"DB1,REAL{24 + (i - 1) * 4}", category="temperature")
        for i in range(1, 11)
    }
    channels["H1"] = ChannelConfig(address="DB1,REAL64", category="humidity")
    channels["H2"] = ChannelConfig(address="DB1,REAL68", category="humidity")
    channels["Air_Speed"] = ChannelConfig(address="DB1,REAL72", category="airflow")
    return channels


@dataclass
class HTTPConfig:
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class Config:
    plc: PLCConfig = field(default_factory=PLCConfig)
    channels: Dict[str, ChannelConfig] = field(default_factory=default_channels)
    influx: InfluxConfig = field(default_factory=InfluxConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    collection_interval: int = 10
    autostart: bool = True
    autostart_delay: float = 5.0
    tags: Dict[str, str] = field(default_factory=dict)
    source_tag: str = "plc_s7_1200"
    log_level: str = "INFO"

    @property
    def address_map(self) -> Dict[str, str]:
        """Channel name -> PLC address."""
        return {name: channel.address for name, channel in self.channels.items()}

    @property
    def categories(self) -> Dict[str, List[str]]:
        """Category -> channel names, in configuration order."""
        grouped: Dict[str, List[str]] = {category: [] for category in CATEGORIES}
        for name, channel in self.channels.items():
            grouped[channel.category].append(name)
        return grouped


def _parse_channels(data: dict) -> Dict[str, ChannelConfig]:
    return {
        name: ChannelConfig(address=str(channel["address"]), category=channel["category"])
        for name, channel in data.items()
    }


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from YAML file with environment variable support.

    Without an explicit path, looks for config/config-{PLCMON_ENV}.yaml and
    falls back to defaults when there is none. InfluxDB settings always come
    from the environment.
    """
    if path is None:
        config_path = get_config_path()
        if config_path.exists():
            path = str(config_path)
        else:
            logger.warning(f"No config file found at {config_path}, using defaults")

    if path is not None:
        config_data = load_yaml_config(path)
    else:
        load_dotenv(get_config_dir() / ".env")
        load_dotenv()
        config_data = {}

    config = Config(
        plc=PLCConfig.from_dict(config_data.get("plc", {})),
        influx=InfluxConfig.from_env(),
        collection_interval=int(config_data.get("collection_interval", 10)),
        autostart=bool(config_data.get("autostart", True)),
        autostart_delay=float(config_data.get("autostart_delay", 5.0)),
        tags={str(k): str(v) for k, v in (config_data.get("tags") or {}).items()},
        source_tag=config_data.get("source_tag", "plc_s7_1200"),
        log_level=get_log_level(config_data),
    )

    if config_data.get("channels"):
        config.channels = _parse_channels(config_data["channels"])

    http_data = config_data.get("http", {})
    config.http = HTTPConfig(
        host=http_data.get("host", "0.0.0.0"),
        port=int(http_data.get("port", 3000)),
    )

    if driver := os.getenv("PLC_DRIVER"):
        config.plc.driver = driver
    if host := os.getenv("PLC_HOST"):
        config.plc.host = host
    if log_level := os.getenv("LOG_LEVEL"):
        config.log_level = log_level.upper()

    if config.collection_interval < 1:
        raise ValueError("collection_interval must be at least 1 second")

    return config
