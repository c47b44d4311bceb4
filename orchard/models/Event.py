from enum import Enum
from typing import Any

from pydantic import BaseModel


class EventName(str, Enum):
    ROUND_REGISTERED = "RoundRegistered"
    CLAIM_SETTLED = "ClaimSettled"
    CALLBACK_INVOKED = "CallbackInvoked"


class Event(BaseModel):
    """
    Auditable record appended to the event log for off-chain observers.
    `args` holds the event specific fields, eg: beneficiary, asset, amount
    """

    name: EventName
    args: dict[str, Any]
