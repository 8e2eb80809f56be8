"""
Pipeline Stage - Abstract base class for worker-pool stages.

A stage owns a pool of worker threads that read units from an input queue,
process them and write results to an output queue. It provides:
- Multi-threaded worker management
- An admission gate bounding the number of units in flight
- Cooperative cancellation through a stop event
- Statistics tracking
"""

import threading
import logging
import time
from typing import Optional, Any
from queue import Queue, Empty, Full
from abc import ABC, abstractmethod


class PipelineStage(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage:
    - Reads data from input_queue
    - Processes it (implemented by subclass) under the admission gate
    - Writes result to output_queue
    - Runs multiple worker threads for concurrency

    Lifecycle:
    ---------
    1. Create stage instance
    2. Call start() to begin processing
    3. Stage processes items from input queue
    4. Call stop() to cancel: pending input is dropped, results produced
       after the stop are discarded, workers are joined
    """

    # How long a blocked worker waits before re-checking the stop event
    POLL_INTERVAL = 0.1

    def __init__(self, name: str, input_queue: Queue, output_queue: Optional[Queue],
                 num_workers: int = 1):
        """
        Initialize pipeline stage.

        Args:
            name: Stage name (for logging/monitoring)
            input_queue: Queue to read input data from
            output_queue: Queue to write output data to (None for final stage)
            num_workers: Number of worker threads, also the in-flight bound
        """
        if num_workers < 1:
            raise ValueError("num_workers must be at least 1")

        self.name = name
        self.input_queue = input_queue
        self.output_queue = output_queue
        self.num_workers = num_workers

        # Worker threads
        self.workers = []
        self.is_running = False
        self.stop_event = threading.Event()

        # Admission gate
        self.gate = threading.BoundedSemaphore(num_workers)
        self.in_flight = 0
        self.max_in_flight = 0

        # Statistics
        self.processed_count = 0
        self.error_count = 0
        self.discarded_count = 0
        self.start_time = None
        self.total_processing_time = 0.0

        # Thread safety
        self.stats_lock = threading.Lock()
        self.control_lock = threading.Lock()

        # Logging
        self.logger = logging.getLogger(f"{self.__class__.__name__}:{self.name}")

        self.logger.debug(f"Initialized stage '{self.name}' with {num_workers} workers")

    @abstractmethod
    def process(self, data: Any) -> Optional[Any]:
        """
        Process a single data item.

        Returns:
            Result to pass to the output queue, or None to drop the item
        """
        pass

    def handle_error(self, data: Any, error: Exception) -> Optional[Any]:
        """
        Turn an unexpected exception from ``process`` into an output item.

        The default drops the item; subclasses that owe exactly one result
        per unit override this.
        """
        return None

    def on_stop(self):
        """Release resources held for the workers (sessions, files, ...)."""
        pass

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def start(self):
        """Start the stage by spawning worker threads."""
        with self.control_lock:
            if self.is_running:
                self.logger.warning(f"Stage '{self.name}' already running")
                return

            self.is_running = True
            self.stop_event.clear()
            self.start_time = time.time()

            for i in range(self.num_workers):
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"{self.name}-Worker-{i+1}",
                    daemon=True
                )
                worker.start()
                self.workers.append(worker)

            self.logger.info(f"Started stage '{self.name}' with {self.num_workers} workers")

    def stop(self, timeout: float = 5.0):
        """
        Stop the stage.

        Args:
            timeout: Maximum seconds to wait for workers to finish
        """
        with self.control_lock:
            if not self.is_running:
                return

            self.logger.info(f"Stopping stage '{self.name}'...")
            self.is_running = False
            self.stop_event.set()

        dropped = self._drain_input()
        if dropped:
            self.logger.debug(f"Dropped {dropped} pending items from '{self.name}'")

        self.on_stop()

        # Wait for workers to finish
        start_wait = time.time()
        for worker in self.workers:
            if worker is threading.current_thread():
                continue
            remaining_time = timeout - (time.time() - start_wait)
            if remaining_time > 0:
                worker.join(timeout=remaining_time)

            if worker.is_alive():
                self.logger.warning(f"Worker {worker.name} did not stop in time")

        self.workers.clear()
        self.logger.info(f"Stopped stage '{self.name}'")

    def _drain_input(self) -> int:
        dropped = 0
        while True:
            try:
                self.input_queue.get_nowait()
            except Empty:
                return dropped
            self.input_queue.task_done()
            dropped += 1

    def _enter(self):
        self.gate.acquire()
        with self.stats_lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self):
        with self.stats_lock:
            self.in_flight -= 1
        self.gate.release()

    def _emit(self, result: Any) -> bool:
        """Put a result on the output queue unless the stage is stopped."""
        while not self.stopped:
            try:
                self.output_queue.put(result, timeout=self.POLL_INTERVAL)
                return True
            except Full:
                continue
        with self.stats_lock:
            self.discarded_count += 1
        return False

    def _worker_loop(self):
        """
        Main worker loop - runs in each worker thread.
        Reads from the input queue, processes and writes to the output queue
        until the stop event is set.
        """
        worker_name = threading.current_thread().name
        self.logger.debug(f"{worker_name} started")

        while not self.stopped:
            try:
                data = self.input_queue.get(timeout=self.POLL_INTERVAL)
            except Empty:
                continue

            try:
                if self.stopped:
                    break

                self._enter()
                start_time = time.time()
                try:
                    result = self.process(data)
                except Exception as e:
                    with self.stats_lock:
                        self.error_count += 1
                    self.logger.error(f"{worker_name} error processing item: {e}", exc_info=True)
                    result = self.handle_error(data, e)
                finally:
                    self._leave()

                processing_time = time.time() - start_time
                with self.stats_lock:
                    self.processed_count += 1
                    self.total_processing_time += processing_time

                if self.stopped:
                    with self.stats_lock:
                        self.discarded_count += 1
                    break

                if result is not None and self.output_queue is not None:
                    self._emit(result)

                self.logger.debug(f"{worker_name} processed item in {processing_time:.3f}s")
            finally:
                self.input_queue.task_done()

        self.logger.debug(f"{worker_name} stopped")

    def get_stats(self) -> dict:
        """
        Get stage statistics.

        Returns:
            dict with statistics
        """
        with self.stats_lock:
            runtime = time.time() - self.start_time if self.start_time else 0

            stats = {
                'name': self.name,
                'is_running': self.is_running,
                'workers': self.num_workers,
                'processed': self.processed_count,
                'errors': self.error_count,
                'discarded': self.discarded_count,
                'in_flight': self.in_flight,
                'max_in_flight': self.max_in_flight,
                'runtime_seconds': round(runtime, 2),
                'input_queue_size': self.input_queue.qsize(),
                'output_queue_size': self.output_queue.qsize() if self.output_queue else 0,
            }

            if runtime > 0:
                stats['throughput_items_per_second'] = round(self.processed_count / runtime, 2)

            if self.processed_count > 0:
                stats['avg_processing_time_seconds'] = round(
                    self.total_processing_time / self.processed_count, 3
                )

        return stats

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', workers={self.num_workers})"
