"""
Bounded retry helper.

``retry_until`` never raises once its attempts are used up: callers get the last
value back along with a flag saying whether the predicate was ever met.
"""

import logging
import time
from collections import namedtuple


logger = logging.getLogger(__name__)

RetryResult = namedtuple("RetryResult", ["succeeded", "value", "attempts"])


def retry_until(action, predicate, attempts=3, delay=1.0, sleep=time.sleep, should_stop=None):
    """
    Call ``action`` up to ``attempts`` times, sleeping ``delay`` seconds before
    each call, until ``predicate(value)`` is true.

    Exceptions raised by ``action`` count as a failed attempt. ``should_stop``
    lets a cancelled caller bail out early.
    """
    value = None
    for attempt in range(1, attempts + 1):
        if should_stop and should_stop():
            return RetryResult(False, value, attempt - 1)
        sleep(delay)
        try:
            value = action()
        except Exception as e:
            logger.warning("Attempt %d/%d failed: %s", attempt, attempts, e)
            continue
        if predicate(value):
            return RetryResult(True, value, attempt)
        logger.debug("Attempt %d/%d did not satisfy the condition", attempt, attempts)

    logger.warning("Gave up after %d attempts, using latest state", attempts)
    return RetryResult(False, value, attempts)
