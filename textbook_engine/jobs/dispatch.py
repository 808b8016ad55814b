"""Helpers that start a job runner detached from the submitting call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)

JobCallable = Callable[[], Awaitable[object]]


class JobDispatcher(Protocol):
  """Contract for handing a job off so the caller does not wait for it."""

  def dispatch(self, job_id: str, job: JobCallable) -> None:
    """Schedule the job; must return without awaiting it."""


async def _run_logged(job_id: str, job: JobCallable) -> None:
  try:
    await job()
  except Exception:  # noqa: BLE001
    logger.error("Background job %s failed", job_id, exc_info=True)


class BackgroundTasksDispatcher:
  """Run jobs after the HTTP response has been sent."""

  def __init__(self, background_tasks: BackgroundTasks) -> None:
    self._background_tasks = background_tasks

  def dispatch(self, job_id: str, job: JobCallable) -> None:
    self._background_tasks.add_task(_run_logged, job_id, job)


class AsyncioJobDispatcher:
  """Run jobs as event-loop tasks, holding strong references until they finish."""

  def __init__(self) -> None:
    self._tasks: set[asyncio.Task[None]] = set()

  def dispatch(self, job_id: str, job: JobCallable) -> None:
    task = asyncio.create_task(_run_logged(job_id, job), name=f"textbook-job-{job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  @property
  def pending(self) -> int:
    return len(self._tasks)

  async def wait_idle(self, timeout: float | None = None) -> bool:
    """Wait for every dispatched job, including ones dispatched while waiting.

    Returns False when jobs are still running after `timeout` seconds; those jobs are left running.
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while self._tasks:
      remaining = None if deadline is None else deadline - loop.time()
      if remaining is not None and remaining <= 0:
        return False
      await asyncio.wait(tuple(self._tasks), timeout=remaining)
    return True
