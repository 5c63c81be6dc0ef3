"""
=============================================================================
THREAD POOL
=============================================================================

A fixed set of worker threads pulling connections off a bounded queue.

=============================================================================
WHY NOT A THREAD PER CONNECTION?
=============================================================================

Spawning a thread for every accepted socket is simple until a burst of
clients arrives: thousands of threads, each with its own stack, all
fighting for the GIL. A pool caps the cost.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──submit()──►  ┌───┬───┬───┬───┐  ──get()──► Worker-0  │
    │                              │ c │ c │ c │   │  ──get()──► Worker-1  │
    │   (blocks when full)         └───┴───┴───┴───┘  ──get()──► Worker-N  │
    │                               bounded queue                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The queue is bounded too. When every worker is busy and the queue is
full, submit() blocks, which stalls the accept loop, which leaves new
clients waiting in the kernel's listen backlog. Backpressure instead of
unbounded memory growth.

=============================================================================
SHUTDOWN: POISON PILLS
=============================================================================

Each worker blocks on queue.get(). To stop them we enqueue one None per
worker after the real work. A worker that dequeues None exits its loop.
Because the queue is FIFO, every connection queued before shutdown is
still handled.

=============================================================================
INTERVIEW QUESTIONS ABOUT THREAD POOLS
=============================================================================

Q: "What happens if a task raises?"
A: "The worker logs it and takes the next task. One bad connection must
   never shrink the pool."

Q: "Why threads and not asyncio?"
A: "Every step here is blocking I/O on one socket: readline, read,
   sendall. Threads let that code stay straight-line. The GIL is
   released while a thread waits on the socket."

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"        # Waiting for a task
    BUSY = "busy"        # Executing a task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call: "call func(*args, **kwargs) later".

    Attributes:
        func: The function to execute.
        args: Positional arguments.
        kwargs: Keyword arguments.
        submitted_at: When the task was queued (for wait-time logging).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread: get a task, run it, repeat until a poison pill arrives.

    Task exceptions are logged and counted; they never end the thread.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int):
        # daemon=True: a stuck client cannot keep the process alive at exit
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(
                f"Worker {self.worker_id} completed task in {elapsed:.3f}s "
                f"(queued {waited:.3f}s)"
            )
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE


class ThreadPool:
    """
    Fixed-size thread pool with a bounded task queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(workers=10, queue_size=10)                      │
    │   pool.start()                                                       │
    │                                                                      │
    │   pool.submit(handle_connection, args=(conn,))   # may block        │
    │                                                                      │
    │   print(pool.stats)                                                  │
    │                                                                      │
    │   pool.shutdown()    # drains the queue, then stops workers         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, workers: int = 10, queue_size: int = 10):
        """
        Args:
            workers: Number of worker threads, all created by start().
            queue_size: Maximum tasks waiting for a worker. submit()
                        blocks beyond this.
        """
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        if queue_size < 1:
            raise ValueError(f"queue_size must be at least 1, got {queue_size}")

        self.workers = workers
        self.queue_size = queue_size

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    def start(self):
        """Create and start all worker threads."""
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting thread pool with {self.workers} workers")
            for worker_id in range(self.workers):
                worker = Worker(self._task_queue, worker_id)
                self._workers.append(worker)
                worker.start()

            self._started = True
            self._shutdown = False

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue a task, blocking while the queue is full.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            timeout: Give up after this many seconds of waiting for room.
                     None waits indefinitely.

        Returns:
            True if queued, False if the timeout expired first.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError("Thread pool is not running")

        task = Task(func=func, args=args, kwargs=kwargs or {})
        try:
            self._task_queue.put(task, block=True, timeout=timeout)
        except queue.Full:
            logger.warning(f"Task queue full for {timeout}s, task rejected")
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish first. If False, tasks still in
                  the queue are discarded.
            timeout: Per-worker join timeout in seconds.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True

        logger.info("Shutting down thread pool...")

        if not wait:
            discarded = 0
            while True:
                try:
                    self._task_queue.get_nowait()
                except queue.Empty:
                    break
                self._task_queue.task_done()
                discarded += 1
            if discarded:
                logger.warning(f"Discarded {discarded} queued tasks")

        # Behind any queued work, so FIFO order drains the queue first
        for _ in self._workers:
            self._task_queue.put(None)

        for worker in self._workers:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning(f"{worker.name} did not stop within {timeout}s")

        self._workers.clear()
        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def pending(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "pending": self.pending,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
