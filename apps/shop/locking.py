"""Bounded lock waits for stock-touching transactions.

Every mutation of stock or orders runs inside ``serialized()``: one
``transaction.atomic`` block whose lock waits are capped at the configured
``LOCK_TIMEOUT``. A wait that runs out surfaces as ``ConcurrencyTimeoutError``.
No retries happen here.
"""
import logging
from contextlib import contextmanager

from django.db import DEFAULT_DB_ALIAS, OperationalError, connections, transaction

from .conf import get_shop_settings
from .exceptions import ConcurrencyTimeoutError

logger = logging.getLogger("shop")

# PostgreSQL lock_not_available / MySQL ER_LOCK_WAIT_TIMEOUT
PG_LOCK_ERRCODES = {"55P03"}
MYSQL_LOCK_ERRNOS = {1205}
LOCK_MESSAGES = (
    "database is locked",
    "database table is locked",
    "lock timeout",
    "could not obtain lock",
    "lock wait timeout exceeded",
)


def _pgcode_from(exc: Exception):
    return getattr(exc, "pgcode", None) or getattr(getattr(exc, "__cause__", None), "pgcode", None)


def _mysql_errno_from(exc: Exception):
    cause = getattr(exc, "__cause__", None)
    args = getattr(cause, "args", None) or exc.args
    return args[0] if args and isinstance(args[0], int) else None


def is_lock_timeout(exc: Exception) -> bool:
    code = _pgcode_from(exc)
    if code and code in PG_LOCK_ERRCODES:
        return True
    if _mysql_errno_from(exc) in MYSQL_LOCK_ERRNOS:
        return True
    msg = str(exc).lower()
    return any(k in msg for k in LOCK_MESSAGES)


def apply_lock_timeout(timeout: float, using: str = DEFAULT_DB_ALIAS) -> None:
    """Cap lock waits for the current transaction on backends that support it."""
    conn = connections[using]
    if conn.vendor == "postgresql":
        with conn.cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = {max(int(timeout * 1000), 1)}")
    elif conn.vendor == "mysql":
        with conn.cursor() as cursor:
            cursor.execute(f"SET SESSION innodb_lock_wait_timeout = {max(int(timeout), 1)}")
    # sqlite: the connection's busy timeout (OPTIONS["timeout"]) already bounds the wait


@contextmanager
def serialized(using: str = DEFAULT_DB_ALIAS):
    timeout = get_shop_settings().lock_timeout
    try:
        with transaction.atomic(using=using):
            apply_lock_timeout(timeout, using)
            yield
    except OperationalError as exc:
        if not is_lock_timeout(exc):
            raise
        logger.warning("lock wait exceeded %ss: %s", timeout, exc)
        raise ConcurrencyTimeoutError(timeout) from exc
