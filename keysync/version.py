"""Server version gate.

Families were added to the remote server over several releases. The gate
answers whether a family's minimum version is met by the server we talk to.
"""

from packaging.version import InvalidVersion, Version

from keysync.logging import get_logger

logger = get_logger(__name__)


class ServerVersionGate:
    """Callable ``(min_version) -> bool`` for a known server version.

    An unknown or unparseable server version is treated as "available" so the
    remote itself decides, reporting unsupported families as errors.
    """

    def __init__(self, server_version: str | None = None):
        self.server_version = server_version
        self._parsed = _parse(server_version)

    def __call__(self, min_version: str) -> bool:
        if self._parsed is None:
            return True
        required = _parse(min_version)
        if required is None:
            return True
        return self._parsed >= required

    def __repr__(self) -> str:
        return f"ServerVersionGate({self.server_version!r})"


def always_available(min_version: str) -> bool:
    return True


def _parse(value: str | None) -> Version | None:
    if not value:
        return None
    # Enterprise builds report e.g. "1.15.2+ent"
    try:
        return Version(value.lstrip("v").split("+", 1)[0])
    except InvalidVersion:
        logger.warning("Unparseable server version", version=value)
        return None
