""" Error taxonomy for the zookeeper operator.

NotFound is not an error here: the object store adapter returns ``None``
for missing objects and treats deletes of missing objects as success.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ZookeeperOperatorError(Exception):
    """Base class for all reconcile errors."""


class ConflictError(ZookeeperOperatorError):
    """The stored resource version advanced since it was read."""


class StalenessError(ConflictError):
    """A reconcile operated on an older cluster than the one that last wrote a child."""


class TransientError(ZookeeperOperatorError):
    """Network or API failure talking to Kubernetes."""


class ExternalStoreError(ZookeeperOperatorError):
    """Failure talking to the ZooKeeper ensemble itself."""


class Severity(str, Enum):
    IGNORABLE = "ignorable"
    ABORT = "abort"


@dataclass
class ExternalCallResult:
    """ Outcome of a call against an external store.

    Args:
        severity: Whether a failure may be ignored or must abort the cycle
        error: The failure, if any
    """

    severity: Severity
    error: Optional[Exception] = None

    @property
    def ok(self):
        return self.error is None

    def raise_if_fatal(self, message):
        """ Raise ExternalStoreError when the call failed and may not be ignored.

        Ignorable failures are logged and swallowed.
        """
        if self.ok:
            return
        if self.severity == Severity.ABORT:
            raise ExternalStoreError(f"{message}: {self.error}") from self.error
        logger.warning(f"{message} (ignored): {self.error}")


# Seconds before kopf retries a cycle that failed with the given error class.
RETRY_DELAYS = {
    StalenessError: 1,
    ConflictError: 1,
    ExternalStoreError: 15,
    TransientError: 10,
}
DEFAULT_RETRY_DELAY = 30


def retry_delay(error):
    """ Backoff for a failed cycle, derived only from the error class.

    Args:
        error: The exception that aborted the cycle
    """
    for error_class, delay in RETRY_DELAYS.items():
        if isinstance(error, error_class):
            return delay
    return DEFAULT_RETRY_DELAY
