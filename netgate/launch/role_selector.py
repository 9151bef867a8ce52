"""
Role selection for netgate processes.

A process is either the authoritative host (server) or a connecting
participant (client). The decision is made once, from the launch arguments
and process feature indicators, and never reconsidered.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

DEDICATED_SERVER_FEATURE = "dedicated_server"
SERVER_FLAG = "server"
DEV_MODE_FLAGS = ("dev", "dev_mode")

_FALSE_VALUES = {"false", "0", "no", "off"}


class Role(StrEnum):
    """Process role."""

    SERVER = "server"
    CLIENT = "client"


def parse_launch_args(argv: Sequence[str]) -> dict[str, str | bool]:
    """
    Parse launch arguments into a mapping.

    `--key=value` sets key to the string value, `--key` alone sets key to True.
    Tokens without the `--` prefix are ignored. Later tokens override earlier
    ones.

    Args:
        argv: Launch arguments, without the program name

    Returns:
        Mapping of option name to value
    """
    parsed: dict[str, str | bool] = {}
    for token in argv:
        if not token.startswith("--") or token == "--":
            continue
        body = token[2:]
        if "=" in body:
            key, value = body.split("=", 1)
            if key:
                parsed[key] = value
        elif body:
            parsed[body] = True
    return parsed


def _flag_is_set(launch_args: Mapping[str, str | bool], key: str) -> bool:
    value = launch_args.get(key)
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_VALUES
    return True


def select_role(launch_args: Mapping[str, str | bool], features: Iterable[str] = ()) -> Role:
    """
    Decide the process role.

    Server if the dedicated-server feature is present or the server flag is
    set; Client otherwise. Absence of every indicator is a normal Client
    decision, not an error.
    """
    if DEDICATED_SERVER_FEATURE in set(features) or _flag_is_set(launch_args, SERVER_FLAG):
        return Role.SERVER
    return Role.CLIENT


@dataclass
class LaunchContext:
    """Parsed launch arguments plus the feature indicators of this process."""

    args: dict[str, str | bool] = field(default_factory=dict)
    features: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_argv(cls, argv: Sequence[str], features: Iterable[str] = ()) -> "LaunchContext":
        return cls(args=parse_launch_args(argv), features=frozenset(features))

    @property
    def dev_mode(self) -> bool:
        return any(_flag_is_set(self.args, flag) for flag in DEV_MODE_FLAGS)

    def get_str(self, key: str, default: str | None = None) -> str | None:
        """Return a `--key=value` option, ignoring bare `--key` flags."""
        value = self.args.get(key)
        return value if isinstance(value, str) else default


class RoleSelector:
    """
    Makes the role decision exactly once.

    The first access to `role` decides; every later access returns the same
    value even if the launch context object is mutated afterwards.
    """

    def __init__(self, launch_context: LaunchContext) -> None:
        self._launch_context = launch_context
        self._role: Role | None = None

    @property
    def role(self) -> Role:
        if self._role is None:
            self._role = select_role(self._launch_context.args, self._launch_context.features)
            logger.info(
                "Process role selected",
                role=self._role.value,
                features=sorted(self._launch_context.features),
                dev_mode=self._launch_context.dev_mode,
            )
        return self._role
