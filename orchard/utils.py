import json
from typing import Any


def write_json(data: Any, path: str) -> None:
    with open(path, "w+") as f:
        data_json = json.dumps(data, indent=4)
        f.write(data_json)


def read_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)
