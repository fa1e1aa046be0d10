"""
STOMP destination prefixes, aware of the configured context path.

Without a context path the application prefix is ``/app``, broker prefixes
are ``/topic`` and ``/queue``, and the user prefix is ``/user``. With a
context path those are prefixed, and plain ``/queue`` stays routable.
"""

from typing import Optional, Tuple

from testfachdienst.src.config import normalize_context_path

EREZEPT_SUFFIX = "/erezept"
USER_QUEUE = "/queue" + EREZEPT_SUFFIX


class StompDestinations:
    """Resolves prefixes and well-known destinations for one context path."""

    def __init__(self, context_path: Optional[str] = ""):
        self.context_path = normalize_context_path(context_path)

    def with_context_path(self, destination: str) -> str:
        return self.context_path + destination

    @property
    def application_prefixes(self) -> Tuple[str, ...]:
        return (self.with_context_path("/app"),)

    @property
    def broker_prefixes(self) -> Tuple[str, ...]:
        if not self.context_path:
            return ("/topic", "/queue")
        return (self.with_context_path("/topic"), "/queue", self.with_context_path("/queue"))

    @property
    def user_prefix(self) -> str:
        return self.with_context_path("/user")

    @property
    def erezept_topic(self) -> str:
        """Broadcast destination for created and updated prescriptions."""
        return self.with_context_path("/topic" + EREZEPT_SUFFIX)

    @property
    def user_reply_destination(self) -> str:
        """Destination a client subscribes to for private replies."""
        return self.user_prefix + USER_QUEUE

    @staticmethod
    def _matches(destination: str, prefix: str) -> bool:
        return destination == prefix or destination.startswith(prefix + "/")

    def application_suffix(self, destination: str) -> Optional[str]:
        """
        Strip the application prefix.

        Returns:
            Handler key such as ``erezept.read.5``, or None if the destination
            is not an application destination
        """
        for prefix in self.application_prefixes:
            if self._matches(destination, prefix):
                return destination[len(prefix):].lstrip("/")
        return None

    def is_broker_destination(self, destination: str) -> bool:
        return any(self._matches(destination, prefix) for prefix in self.broker_prefixes)

    def is_user_destination(self, destination: str) -> bool:
        return self._matches(destination, self.user_prefix)
