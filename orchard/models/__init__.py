"""
Types here are instantiated as subclasses of pydantic's `BaseModel`.
This means we get runtime deserialization and validation for free just by using type declarations
and a couple of pydantic helpers.

Use these in your code as python objects, then serialize to json by converting to a dict with `.model_dump()`
"""

from orchard.models.types import *
from orchard.models.Account import *
from orchard.models.Round import *
from orchard.models.Claim import *
from orchard.models.Event import *
from orchard.models.Config import *
from orchard.models.DB import *
