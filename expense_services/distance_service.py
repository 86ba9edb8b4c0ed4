"""
DistanceService -- remote distance lookup with Haversine fallback.

Responsibility:
    Wraps the optional distance-matrix oracle (Google Distance Matrix over
    ``requests``) with the retry, backoff and fallback policy, and runs the
    best-effort duration enrichment for ended journeys in the background.

Architecture position:
    Services -- imperative shell around ``expense_engines.distance``.

Invariants enforced:
    - ``estimate`` never raises an oracle failure.  Any failure, an
      exhausted retry budget, or an unconfigured oracle yields the
      Haversine estimate with the reason in ``error``.
    - Only rate-limit signals (``OVER_QUERY_LIMIT`` or HTTP 429) are
      retried, sleeping ``backoff * 2**attempt`` between attempts.
    - Enrichment results are held by DurationEnricher and read back by a
      later call; nothing is written into a response already returned or
      into the frozen journey row.

Failure modes:
    - InvalidCoordinateError for bad input coordinates (before any I/O).
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from decimal import Decimal
from uuid import UUID

import requests

from expense_config.settings import OracleSettings
from expense_engines.distance import DistanceEstimate, haversine_estimate
from expense_kernel.domain.values import Coordinate, DistanceSource, round2
from expense_kernel.exceptions import (
    DistanceOracleError,
    DistanceOracleRateLimitedError,
)
from expense_kernel.logging_config import get_logger

logger = get_logger("services.distance")

RATE_LIMIT_STATUS = "OVER_QUERY_LIMIT"
HTTP_TOO_MANY_REQUESTS = 429
FALLBACK_PREFIX = "Google Maps API unavailable"


class DistanceOracle(ABC):
    """Remote distance/duration lookup."""

    @abstractmethod
    def lookup(self, origin: Coordinate, destination: Coordinate) -> DistanceEstimate:
        """
        One remote query.

        Raises:
            DistanceOracleRateLimitedError: The service asked us to slow down.
            DistanceOracleError: Any other failure.
        """


class GoogleDistanceMatrixOracle(DistanceOracle):
    """Google Distance Matrix client over a ``requests.Session``."""

    def __init__(self, settings: OracleSettings, http: requests.Session | None = None):
        if not settings.api_key:
            raise ValueError("GoogleDistanceMatrixOracle requires an api_key")
        self._settings = settings
        self._http = http or requests.Session()

    def lookup(self, origin: Coordinate, destination: Coordinate) -> DistanceEstimate:
        params = {
            "origins": origin.as_query(),
            "destinations": destination.as_query(),
            "key": self._settings.api_key,
            "mode": self._settings.mode,
            "units": self._settings.units,
        }
        try:
            response = self._http.get(
                self._settings.base_url,
                params=params,
                timeout=self._settings.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise DistanceOracleError("request timed out") from exc
        except requests.RequestException as exc:
            raise DistanceOracleError(f"network error: {exc}") from exc

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise DistanceOracleRateLimitedError(f"HTTP {HTTP_TOO_MANY_REQUESTS}")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise DistanceOracleError(
                f"request failed: {response.status_code} {response.reason}"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise DistanceOracleError("response was not JSON") from exc

        status = payload.get("status")
        if status == RATE_LIMIT_STATUS:
            raise DistanceOracleRateLimitedError(RATE_LIMIT_STATUS)
        if status != "OK":
            detail = payload.get("error_message") or "Unknown error"
            raise DistanceOracleError(f"{status} - {detail}")

        try:
            element = payload["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            element = None
        if not element or element.get("status") != "OK":
            element_status = (element or {}).get("status", "Unknown error")
            raise DistanceOracleError(f"No route found: {element_status}")

        try:
            meters = element["distance"]["value"]
            seconds = element["duration"]["value"]
        except (KeyError, TypeError) as exc:
            raise DistanceOracleError("route element missing distance or duration") from exc

        return DistanceEstimate(
            distance_km=round2(Decimal(str(meters)) / 1000),
            duration_min=int(round(seconds / 60)),
            source=DistanceSource.REMOTE,
        )


class DistanceEstimator:
    """
    Remote-first distance estimation with deterministic fallback.

    Contract:
        ``estimate`` returns a DistanceEstimate; the remote source is used
        only when an oracle is configured and ``prefer_remote`` is True.
    """

    def __init__(
        self,
        oracle: DistanceOracle | None = None,
        retries: int = 2,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if retries < 0:
            raise ValueError("retries cannot be negative")
        self._oracle = oracle
        self._retries = retries
        self._backoff = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: OracleSettings,
        http: requests.Session | None = None,
    ) -> DistanceEstimator:
        oracle = GoogleDistanceMatrixOracle(settings, http) if settings.enabled else None
        return cls(
            oracle=oracle,
            retries=settings.retries,
            backoff_seconds=settings.backoff_seconds,
        )

    @property
    def remote_enabled(self) -> bool:
        return self._oracle is not None

    def estimate(
        self,
        origin,
        destination,
        prefer_remote: bool = True,
        retries: int | None = None,
    ) -> DistanceEstimate:
        origin = Coordinate.from_mapping(origin)
        destination = Coordinate.from_mapping(destination)

        if not prefer_remote:
            return haversine_estimate(origin, destination)
        if self._oracle is None:
            return haversine_estimate(
                origin, destination, error=f"{FALLBACK_PREFIX}: API key not configured"
            )

        budget = self._retries if retries is None else retries
        last_error: DistanceOracleError | None = None
        for attempt in range(budget + 1):
            try:
                return self._oracle.lookup(origin, destination)
            except DistanceOracleRateLimitedError as exc:
                last_error = exc
                if attempt >= budget:
                    break
                delay = self._backoff * 2**attempt
                logger.info(
                    "distance_oracle_rate_limited",
                    extra={"attempt": attempt + 1, "retry_in_seconds": delay},
                )
                self._sleep(delay)
            except DistanceOracleError as exc:
                last_error = exc
                break

        logger.warning(
            "distance_oracle_fallback",
            extra={"error": str(last_error), "error_code": last_error.code},
        )
        return haversine_estimate(
            origin, destination, error=f"{FALLBACK_PREFIX}: {last_error}"
        )


class DurationEnricher:
    """
    Detached remote duration lookups for ended journeys.

    ``submit`` returns immediately; the estimate is later available through
    ``result_for``.  Pending lookups can be cancelled.  Only remote results
    carrying a duration are kept, and only the newest ``max_results`` of
    them.  A lookup stops being tracked as pending once it starts running.
    """

    def __init__(
        self, estimator: DistanceEstimator, max_workers: int = 2, max_results: int = 500
    ):
        self._estimator = estimator
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="duration-enricher"
        )
        self._lock = threading.Lock()
        self._max_results = max_results
        self._futures: dict[UUID, Future] = {}
        self._results: OrderedDict[UUID, DistanceEstimate] = OrderedDict()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._futures)

    @property
    def result_count(self) -> int:
        with self._lock:
            return len(self._results)

    def submit(self, journey_id: UUID, origin, destination) -> Future | None:
        """Queue a lookup; None when no remote oracle is configured."""
        if not self._estimator.remote_enabled:
            return None
        with self._lock:
            future = self._executor.submit(self._run, journey_id, origin, destination)
            self._futures[journey_id] = future
        return future

    def _run(self, journey_id: UUID, origin, destination) -> DistanceEstimate:
        with self._lock:
            self._futures.pop(journey_id, None)
        estimate = self._estimator.estimate(origin, destination, retries=0)
        if estimate.source is DistanceSource.REMOTE and estimate.duration_min is not None:
            with self._lock:
                self._results[journey_id] = estimate
                self._results.move_to_end(journey_id)
                while len(self._results) > self._max_results:
                    self._results.popitem(last=False)
            logger.info(
                "journey_duration_enriched",
                extra={
                    "journey_id": str(journey_id),
                    "duration_min": estimate.duration_min,
                },
            )
        else:
            logger.info(
                "journey_duration_unavailable",
                extra={"journey_id": str(journey_id), "error": estimate.error},
            )
        return estimate

    def result_for(self, journey_id: UUID) -> DistanceEstimate | None:
        with self._lock:
            return self._results.get(journey_id)

    def cancel(self, journey_id: UUID) -> bool:
        """Cancel a lookup that has not started yet."""
        with self._lock:
            future = self._futures.pop(journey_id, None)
        return future.cancel() if future is not None else False

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        with self._lock:
            self._futures.clear()
