import os
from typing import Optional
from dotenv import load_dotenv
from orchard.errors import MissingEnvironmentVariableException

load_dotenv()


def env_var(accessor: str, default: Optional[str] = None) -> str:
    """
    Attempt to fetch an environment variable and throw
    an error if not found and no default is given
    """
    var = os.environ.get(accessor, default)
    if not var:
        raise MissingEnvironmentVariableException(accessor)
    return var


ORCHARD_CONFIG = env_var("ORCHARD_CONFIG", "orchard-conf.json")
ORCHARD_LOG_LEVEL = env_var("ORCHARD_LOG_LEVEL", "INFO")
