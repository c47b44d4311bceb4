from pydantic import BaseModel, field_validator, PositiveInt

from orchard.errors import BadConfigException
from orchard.models.Account import checksum
from orchard.models.types import EthereumAddress

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Config(BaseModel):
    """
    :param `db_path`: tinydb json file holding rounds, claims, events and the vault
    :param `custody`: the orchard's own account inside the vault
    :param `chain_id`: chain the roots were generated for, informational only
    :param `log_level`: passed to `logging.basicConfig`
    """

    db_path: str
    custody: EthereumAddress
    chain_id: PositiveInt = 1
    log_level: str = "INFO"

    @field_validator("custody")
    @classmethod
    def checksum_custody(cls, custody: str):
        try:
            return checksum(custody)
        except ValueError:
            raise BadConfigException(f"Custody is not a valid address: {custody}")

    @field_validator("log_level")
    @classmethod
    def valid_log_level(cls, level: str):
        if level.upper() not in LOG_LEVELS:
            raise BadConfigException(f"Unknown log level {level}")
        return level.upper()
