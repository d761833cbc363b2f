"""
CodeGeneratorManager - lifecycle façade and request queue for code generation.

Requests may be submitted from any thread. They are appended to a FIFO
queue and processed one at a time by a dispatch task running on the
manager's own event loop thread, which exists only while the manager is
resumed. Callbacks run on that thread, in submission order.
"""

import asyncio
import logging
import threading
from collections import deque
from typing import Deque, Optional

from .exceptions import CodeGenerationError, GenerationTimeout
from .request import CodeGenerationRequest
from .service import CodeGeneratorService


class CodeGeneratorManager:
    """
    Binds a CodeGeneratorService to a host's active lifespan.

    Call on_resume() when the host becomes active and on_pause() when it
    stops. Pausing drops the in-flight request and everything still queued
    without invoking their callbacks; requests submitted while paused wait
    for the next on_resume().
    """

    def __init__(self, service: CodeGeneratorService):
        self.logger = logging.getLogger(__name__)
        self.service = service

        self._lock = threading.Lock()
        self._queue: Deque[CodeGenerationRequest] = deque()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._current: Optional[CodeGenerationRequest] = None

    def __enter__(self):
        self.on_resume()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.on_pause()

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._loop is not None

    @property
    def pending_count(self) -> int:
        """Number of requests waiting to be dispatched."""
        with self._lock:
            return len(self._queue)

    # ─── Lifecycle ───────────────────────────────────────────────────

    def on_resume(self):
        """
        Start the engine session and the dispatch task.

        Blocks until the session is ready. Calling it while already resumed
        does nothing.

        Raises:
            EngineStartError: If the engine cannot be started
        """
        with self._lock:
            if self._loop is not None:
                return
            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=self._run_loop, args=(loop,),
                                      daemon=True, name='codegen-manager')
            self._loop = loop
            self._thread = thread
        thread.start()

        try:
            asyncio.run_coroutine_threadsafe(self._start_session(), loop).result()
        except BaseException:
            with self._lock:
                self._loop = None
                self._thread = None
            self._shutdown_loop(loop, thread)
            raise
        self.logger.info("Code generator manager resumed")

    def on_pause(self):
        """
        Dispose the engine session, dropping in-flight and queued requests.

        Blocks until the dispatch task has stopped; no callback of a dropped
        request fires afterwards. Calling it while paused does nothing.
        """
        with self._lock:
            loop, thread = self._loop, self._thread
            if loop is None:
                return
            if threading.current_thread() is thread:
                raise RuntimeError("on_pause() cannot be called from a code generation callback")
            self._loop = None
            self._thread = None
            dropped = len(self._queue)
            self._queue.clear()

        in_flight = asyncio.run_coroutine_threadsafe(self._stop_session(), loop).result()
        self._shutdown_loop(loop, thread)

        if dropped or in_flight:
            self.logger.info(
                f"Code generator manager paused; dropped {dropped} queued "
                f"and {1 if in_flight else 0} in-flight request(s)"
            )
        else:
            self.logger.info("Code generator manager paused")

    # ─── Submission ──────────────────────────────────────────────────

    def request_code_generation(self, request: CodeGenerationRequest):
        """Queue a request. Safe to call from any thread."""
        if not isinstance(request, CodeGenerationRequest):
            raise TypeError(f"Expected CodeGenerationRequest, got {type(request).__name__}")
        with self._lock:
            self._queue.append(request)
            loop = self._loop
            if loop is not None:
                loop.call_soon_threadsafe(self._wake)

    # ─── Event loop side ─────────────────────────────────────────────

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop):
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    @staticmethod
    def _shutdown_loop(loop: asyncio.AbstractEventLoop, thread: threading.Thread):
        loop.call_soon_threadsafe(loop.stop)
        thread.join()

    async def _start_session(self):
        await self.service.activate()
        self._wakeup = asyncio.Event()
        self._dispatch_task = asyncio.get_running_loop().create_task(self._dispatch_loop())
        self._wake()

    async def _stop_session(self) -> bool:
        task = self._dispatch_task
        self._dispatch_task = None
        in_flight = self._current is not None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                self.logger.exception("Dispatch task failed before pause")
        self._current = None
        await self.service.deactivate()
        return in_flight

    def _wake(self):
        if self._wakeup is not None:
            self._wakeup.set()

    def _next_request(self) -> Optional[CodeGenerationRequest]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    async def _dispatch_loop(self):
        while True:
            request = self._next_request()
            if request is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            self._current = request
            try:
                await self._process(request)
            finally:
                self._current = None

    async def _process(self, request: CodeGenerationRequest):
        language = request.language.name
        self.logger.debug(f"Generating {language} code ({len(request.workspace_content)} chars)")
        try:
            await self.service.ensure_resources_loaded(
                request.block_definitions, request.required_generator_scripts()
            )
            command = self.service.build_command(request.workspace_content, request.language)
            code = await self.service.execute(command)
        except GenerationTimeout as e:
            self.logger.warning(f"Dropping {language} request: {e}")
            return
        except CodeGenerationError as e:
            self._report_failure(request, e)
            return
        except Exception as e:
            self.logger.exception(f"Unexpected error while generating {language} code")
            self._report_failure(request, e)
            return

        try:
            request.deliver(code)
        except Exception:
            self.logger.exception(f"Code generation callback for {language} raised")

    def _report_failure(self, request: CodeGenerationRequest, error: Exception):
        language = request.language.name
        if request.error_callback is None:
            self.logger.error(f"{language} code generation failed: {error}")
            return
        self.logger.debug(f"{language} code generation failed: {error}")
        try:
            request.fail(error)
        except Exception:
            self.logger.exception(f"Code generation error callback for {language} raised")
