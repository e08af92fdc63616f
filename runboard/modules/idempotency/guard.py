"""
IdempotencyGuard: single-key claim / complete reservations.

Purpose
-------
Let exactly one caller "own" an operation identified by a caller-chosen key
(an order's Idempotency-Key, for example) and let later callers see that
owner's result.

Lifecycle of a reservation record `idem:<key>`:

    absent --try_claim--> "PENDING" (ttl) --complete--> <final value> (ttl refreshed)
       ^                                                      |
       +------------------------ ttl expiry ------------------+

Responsibilities
----------------
- `try_claim`: atomically create the placeholder or report the existing value
- `complete`: swap the placeholder for the final value and refresh the TTL

Non-Responsibilities
--------------------
- Releasing claims. A claimant that crashes before completing leaves a
  placeholder that expires on its own; the key is then claimable again.
- Serializing the final value (callers pass a string)

Key Design Decisions
--------------------
- Both steps are single Lua scripts. There is never an EXISTS / GET followed
  by a separate SET.
- `complete` only replaces a value that is still the placeholder. After the
  reservation expired (or if it was already completed) it changes nothing,
  returns False and logs a warning. An expired reservation is never
  recreated and a completed value is never overwritten.
- A second caller that reads the placeholder is told the operation is in
  flight. It may see the placeholder until the first caller completes.

Configuration Keys
------------------
- idempotency.key_prefix      : str (default "idem:")
- idempotency.ttl_seconds     : int (default 600)
- idempotency.pending_marker  : str (default "PENDING")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import get_logger
from runboard.core.redis.service import RedisService
from runboard.modules.shared.validators import require_text

logger = get_logger(__name__)


# KEYS[1] reservation key; ARGV[1] placeholder, ARGV[2] ttl ms
CLAIM_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current then
    return {0, current}
end
redis.call('SET', KEYS[1], ARGV[1], 'PX', ARGV[2])
return {1}
"""

# KEYS[1] reservation key; ARGV[1] placeholder, ARGV[2] final value, ARGV[3] ttl ms
COMPLETE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
    return 1
end
return 0
"""


@dataclass(frozen=True)
class ClaimResult:
    """
    Outcome of `try_claim`.

    `first` is True for the caller that created the reservation; otherwise
    `existing_value` holds whatever the record currently contains.
    """

    first: bool
    existing_value: Optional[str] = None
    pending_marker: str = "PENDING"

    @property
    def in_flight(self) -> bool:
        """True when another caller holds the claim but has not completed it."""
        return not self.first and self.existing_value == self.pending_marker


def _text(value: Union[str, bytes, None]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class IdempotencyGuard:
    """
    Claim / complete reservations stored in Redis.

    Usage
    -----
    >>> guard = IdempotencyGuard()
    >>> claim = await guard.try_claim("order-7f3a")
    >>> if claim.first:
    ...     await guard.complete("order-7f3a", json.dumps(result))
    """

    def __init__(
        self,
        redis: type[RedisService] = RedisService,
        config_manager: type[ConfigManager] = ConfigManager,
    ) -> None:
        self._redis = redis
        self.key_prefix = config_manager.get_str("idempotency.key_prefix", "idem:")
        self.ttl_seconds = config_manager.get_int("idempotency.ttl_seconds", 600, min_value=1)
        self.pending_marker = config_manager.get_str("idempotency.pending_marker", "PENDING")

    def reservation_key(self, key: str) -> str:
        return f"{self.key_prefix}{require_text(key, 'key')}"

    async def try_claim(self, key: str) -> ClaimResult:
        """
        Claim `key` if nobody holds it.

        Raises
        ------
        ValidationError
            If `key` is blank.
        AmbiguousOutcomeError
            If the round trip timed out; re-claiming is safe.
        StoreUnavailableError
            If the store could not be reached.
        """
        record_key = self.reservation_key(key)
        reply = await self._redis.eval_script(
            CLAIM_SCRIPT,
            keys=[record_key],
            args=[self.pending_marker, self.ttl_seconds * 1000],
            operation="try_claim",
            mutating=True,
        )

        if int(reply[0]) == 1:
            logger.debug("Reservation claimed", extra={"reservation_key": record_key})
            return ClaimResult(first=True, pending_marker=self.pending_marker)

        existing = _text(reply[1])
        result = ClaimResult(
            first=False, existing_value=existing, pending_marker=self.pending_marker
        )
        logger.info(
            "Reservation already claimed",
            extra={"reservation_key": record_key, "in_flight": result.in_flight},
        )
        return result

    async def complete(self, key: str, final_value: str) -> bool:
        """
        Replace the placeholder with `final_value` and refresh the TTL.

        Returns False (and changes nothing) when the record no longer holds
        the placeholder, i.e. the reservation expired or was already completed.
        """
        record_key = self.reservation_key(key)
        if not isinstance(final_value, str):
            raise TypeError("final_value must be a string")

        replaced = await self._redis.eval_script(
            COMPLETE_SCRIPT,
            keys=[record_key],
            args=[self.pending_marker, final_value, self.ttl_seconds * 1000],
            operation="complete",
            mutating=True,
        )

        if int(replaced) == 1:
            logger.debug("Reservation completed", extra={"reservation_key": record_key})
            return True

        logger.warning(
            "Reservation was not pending at completion; value left unchanged",
            extra={"reservation_key": record_key, "ttl_seconds": self.ttl_seconds},
        )
        return False
