"""Read TOML config files into Pydantic models.

Backs [`ServingConfig.from_toml()`][callrelay.config.ServingConfig.from_toml]
so relay server config files are validated strictly against the model.
"""
from __future__ import annotations

import sys
from typing import BinaryIO
from typing import TypeVar

from pydantic import BaseModel

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    import tomllib
else:  # pragma: <3.11 cover
    import tomli as tomllib

BaseModelT = TypeVar('BaseModelT', bound=BaseModel)


def load(model: type[BaseModelT], fp: BinaryIO) -> BaseModelT:
    """Parse TOML from a binary file into a model.

    Args:
        model: Config model type to parse TOML using.
        fp: File-like bytes stream to read in.

    Returns:
        Model initialized from TOML file.
    """
    return loads(model, fp.read().decode())


def loads(model: type[BaseModelT], data: str) -> BaseModelT:
    """Parse a TOML string into a model.

    Validation is strict so values of the wrong type are rejected rather
    than coerced.

    Args:
        model: Config model type to parse TOML using.
        data: TOML string to parse.

    Returns:
        Model initialized from the TOML string.

    Raises:
        pydantic.ValidationError: If the data does not match the model.
    """
    return model.model_validate(tomllib.loads(data), strict=True)
