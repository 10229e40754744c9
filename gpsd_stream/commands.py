"""Construction of gpsd request commands.

Commands are sent as ``?NAME;`` or ``?NAME={...};`` where the optional
object is built from a mapping of boolean options.
"""

from typing import Mapping, Optional

WATCH_COMMAND = "WATCH"
POLL_COMMAND = "POLL"
VERSION_COMMAND = "VERSION"

# Options sent by the read loop when (re)entering watch mode
WATCH_ENABLE = {"enable": True, "json": True}
WATCH_DISABLE = {"enable": False}


def build_command(name: str, options: Optional[Mapping[str, bool]] = None) -> str:
    """Build a complete command string.

    Args:
        name: Command name, e.g. "WATCH"
        options: Boolean options, written in mapping order

    Returns:
        The command, e.g. '?WATCH={"enable":true,"json":true};'

    Example:
        >>> build_command("POLL")
        '?POLL;'
        >>> build_command("WATCH", {"enable": False})
        '?WATCH={"enable":false};'
    """
    suffix = ""
    if options is not None:
        pairs = [
            f'"{key}":{"true" if value else "false"}'
            for key, value in options.items()
        ]
        suffix = "={" + ",".join(pairs) + "}"
    return f"?{name}{suffix};"
