import json
import logging
from pathlib import Path
from typing import Optional

from orchard.env import ORCHARD_CONFIG, ORCHARD_LOG_LEVEL
from orchard.errors import BadConfigException
from orchard.models import Config


def load_conf(path: Optional[str] = None) -> Config:
    """Loads an existing config from file, defaulting to $ORCHARD_CONFIG"""
    config_path = Path(path or ORCHARD_CONFIG)
    if not config_path.exists():
        raise BadConfigException(f"No config file at {config_path}")
    return Config.model_validate_json(config_path.read_text())


def create_conf(path: str, custody: str, db_path: str = "orchard-db.json") -> Config:
    """Generates a fresh config file, refusing to overwrite an existing one"""
    if Path(path).exists():
        raise BadConfigException(f"Config already exists at {path}")

    conf = Config(db_path=db_path, custody=custody, log_level=ORCHARD_LOG_LEVEL)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w+") as j:
        j.write(json.dumps(conf.model_dump(), indent=4))
    return conf


def setup_logging(conf: Config) -> None:
    logging.basicConfig(
        level=conf.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
