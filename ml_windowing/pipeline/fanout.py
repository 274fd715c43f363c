"""
Per-user fan-out of the windowing walk.

Each user's walk is independent and touches no shared state, so the run is an
embarrassingly parallel map over user keys. Two backends are provided:

  serial: in-process loop; the default and what the tests use.
  ray:    users are batched into Ray remote tasks (``batch_size`` users per
           task) so the per-task overhead is paid per batch, not per user.

Both return results in input user order. A ``SessionContractError`` fails only
the affected user: it is captured into ``UserResult.failure`` and the run
continues. Any other exception propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional, Sequence

import ray

from ml_windowing.config import RunnerConfig, WindowingConfig
from ml_windowing.models.meta import UserFailure
from ml_windowing.models.session import Session
from ml_windowing.models.window import LookbackWindow
from ml_windowing.windowing.errors import SessionContractError
from ml_windowing.windowing.generator import generate_windows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserResult:
    """Outcome of one user's walk.

    Attributes:
        user_id: The user key.
        windows: Emitted windows in generation order (empty on failure).
        failure: Set when the user's sessions were rejected.
    """

    user_id: str
    windows: list[LookbackWindow] = field(default_factory=list)
    failure: Optional[UserFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def generate_for_user(
    user_id: str,
    sessions: Sequence[Session],
    config: WindowingConfig,
) -> UserResult:
    """Run one user's walk to completion, isolating contract violations."""
    try:
        windows = list(generate_windows(user_id, sessions, config))
    except SessionContractError as exc:
        logger.warning("Skipping user %s: %s", user_id, exc.reason, extra={"user_id": user_id})
        return UserResult(
            user_id=user_id,
            failure=UserFailure(
                user_id=user_id,
                error_type=type(exc).__name__,
                message=exc.reason,
            ),
        )
    return UserResult(user_id=user_id, windows=windows)


def run_serial(
    grouped: Mapping[str, Sequence[Session]],
    config: WindowingConfig,
) -> Iterator[UserResult]:
    """Walk every user in-process, in mapping order."""
    for user_id, sessions in grouped.items():
        yield generate_for_user(user_id, sessions, config)


@ray.remote
def _generate_batch(
    batch: list[tuple[str, list[Session]]],
    config: WindowingConfig,
) -> list[UserResult]:
    """Ray task: walk a batch of users."""
    return [generate_for_user(user_id, sessions, config) for user_id, sessions in batch]


def run_with_ray(
    grouped: Mapping[str, Sequence[Session]],
    config: WindowingConfig,
    batch_size: int = 500,
    num_cpus: Optional[int] = None,
) -> list[UserResult]:
    """Walk users on Ray workers, ``batch_size`` users per task.

    Ray is initialised if needed and shut down again only if this call
    started it. Results are returned in input user order.
    """
    items = [(user_id, list(sessions)) for user_id, sessions in grouped.items()]
    if not items:
        return []

    started_here = not ray.is_initialized()
    if started_here:
        ray.init(num_cpus=num_cpus, ignore_reinit_error=True, log_to_driver=False)

    try:
        config_ref = ray.put(config)
        batches = [items[i:i + batch_size] for i in range(0, len(items), batch_size)]
        logger.info("Dispatching %d users in %d Ray task(s)", len(items), len(batches))
        futures = [_generate_batch.remote(batch, config_ref) for batch in batches]
        # ray.get preserves the order of ``futures``, hence of users.
        return [result for batch_results in ray.get(futures) for result in batch_results]
    finally:
        if started_here:
            ray.shutdown()


def run_fanout(
    grouped: Mapping[str, Sequence[Session]],
    config: WindowingConfig,
    runner: RunnerConfig,
) -> Iterator[UserResult]:
    """Dispatch to the backend named by ``runner.backend``."""
    if runner.backend == "ray":
        yield from run_with_ray(grouped, config, runner.batch_size, runner.num_cpus)
    else:
        yield from run_serial(grouped, config)
