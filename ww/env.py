import os
import re
from collections.abc import Mapping

DEFAULT_ARGS_ENV_KEY = "WW_DEFAULT_ARGS"

_WORD_SPLIT = re.compile(r'"([^"]*)"|(\S+)')


def split_default_args(value: str) -> list[str]:
    """
    Splits on whitespace, keeping double-quoted spans together (without
    the quotes). An empty pair of quotes yields an empty argument.
    """

    result: list[str] = []
    for match in _WORD_SPLIT.finditer(value):
        quoted, bare = match.groups()
        result.append(quoted if quoted is not None else bare)
    return result


def args_from_environment(environ: Mapping[str, str] = os.environ) -> list[str]:
    return split_default_args(environ.get(DEFAULT_ARGS_ENV_KEY, ""))
