"""Log output format selection for the mock server."""

import os
from typing import Literal


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"

_ENV_ALIASES: dict[str, LogFormat] = {
    "json": "json",
    "plain": "plain",
    "console": "console",
    "auto": "console",
    "rich": "console",
}


def get_log_format(cli_override: str | None = None) -> LogFormat:
    """
    Resolve the log format: CLI option first, then ``CONSOLE_OUTPUT_FORMAT``,
    then ``console``.

    The environment variable also accepts ``auto`` and ``rich``, both mapped
    to the coloured console renderer. Unknown values are ignored.
    """
    if cli_override and cli_override.lower() in ("json", "console", "plain"):
        return cli_override.lower()  # type: ignore[return-value]

    env_value = os.environ.get(ENV_VAR_NAME, "").lower()
    if env_value in _ENV_ALIASES:
        return _ENV_ALIASES[env_value]

    return "console"
