"""
Background generation scheduler.

A single-owner actor that keeps the expensive pipeline responsive under rapid
edits. It holds at most one pending request and at most one run in flight;
a newer submission simply replaces the pending one, so a burst of edits
collapses into a single run with the latest parameters.

All scheduler state lives on the event loop thread. Runs execute in an
executor and requests cross that boundary as plain dicts, so the two sides
never share objects by reference.
"""

import asyncio
from concurrent.futures import ProcessPoolExecutor

from treedangler.config import PipelineConfig
from treedangler.io.scene import scene_to_request
from treedangler.models import GenerateRequest, GenerateResponse
from treedangler.pipeline import execute_request
from treedangler.tracer import get_tracer


class GenerationScheduler:
    """
    Coalescing scheduler for generation requests.

    submit() always overwrites the pending request. When idle, the pending
    request starts after a short quiescence delay; when a run completes, the
    next pending request (if any) starts immediately. Runs are never
    cancelled, and every outcome, success or failure, reaches on_response
    tagged with the originating request id.
    """

    def __init__(self, on_response, config=None, executor=None, runner=execute_request):
        self._on_response = on_response
        self._config = config or PipelineConfig()
        self._executor = executor
        self._owns_executor = False
        self._runner = runner
        self._pending = None
        self._in_flight = False
        self._driver = None
        self.runs_started = 0

        if executor is None and self._config.scheduler.use_processes:
            self._executor = ProcessPoolExecutor(max_workers=self._config.scheduler.max_workers)
            self._owns_executor = True

    @property
    def in_flight(self):
        return self._in_flight

    @property
    def has_pending(self):
        return self._pending is not None

    @property
    def idle(self):
        return self._driver is None

    def submit(self, request):
        """
        Queue a request, replacing any request not yet started.

        Must be called from the event loop thread.
        """
        tracer = get_tracer()

        if self._pending is not None:
            tracer.event(f"Request {self._pending.id} superseded by {request.id}", level="DEBUG")
        self._pending = request

        if self._driver is None:
            loop = asyncio.get_running_loop()
            self._driver = loop.create_task(self._drive())

    async def wait_idle(self):
        """Wait until nothing is pending or in flight."""
        while self._driver is not None:
            await self._driver

    def close(self):
        """Shut down an executor the scheduler created itself."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)
            self._owns_executor = False

    async def _drive(self):
        try:
            await asyncio.sleep(self._config.scheduler.quiescence_delay)
            while self._pending is not None:
                # let near-simultaneous submissions land before taking one
                await asyncio.sleep(0)
                request, self._pending = self._pending, None

                self._in_flight = True
                self.runs_started += 1
                try:
                    response = await self._execute(request)
                finally:
                    self._in_flight = False

                self._deliver(response)
        finally:
            self._driver = None

    async def _execute(self, request):
        tracer = get_tracer()
        loop = asyncio.get_running_loop()
        payload = request.model_dump(mode="json")

        tracer.event(f"Starting run for request {request.id}")
        try:
            raw = await loop.run_in_executor(self._executor, self._runner, payload, self._config)
            return GenerateResponse.model_validate(raw)
        except Exception as e:
            tracer.event(f"Run for request {request.id} failed: {type(e).__name__}: {e}", level="ERROR")
            return GenerateResponse.failure(request.id, f"{type(e).__name__}: {e}")

    def _deliver(self, response):
        tracer = get_tracer()
        try:
            self._on_response(response)
        except Exception as e:
            tracer.event(f"Response handler failed for {response.id}: {type(e).__name__}: {e}", level="ERROR")


class ResponseGate:
    """
    Applies responses in request order.

    A response is accepted only if its id is higher than every id accepted
    before it; older or out-of-order responses are dropped.
    """

    def __init__(self):
        self._highest = None

    @property
    def highest_applied(self):
        return self._highest

    def accept(self, response):
        if self._highest is not None and response.id <= self._highest:
            get_tracer().event(f"Dropping stale response {response.id}", level="DEBUG")
            return False
        self._highest = response.id
        return True


class GenerationClient:
    """
    Foreground side of the scheduler.

    Issues monotonically increasing request ids and keeps the latest applied
    result. An applied error response marks generation as unavailable while
    the previous pieces stay in place.
    """

    def __init__(self, config=None, executor=None, runner=execute_request, on_update=None):
        self._config = config or PipelineConfig()
        self._gate = ResponseGate()
        self._last_id = 0
        self._on_update = on_update
        self.scheduler = GenerationScheduler(self._receive, self._config, executor, runner)
        self.latest_response = None
        self.latest_pieces = []
        self.latest_markup = None
        self.latest_preview = None
        self.generation_unavailable = False
        self.submitted = 0

    @property
    def applied_id(self):
        return self._gate.highest_applied

    def next_request_id(self):
        self._last_id += 1
        return self._last_id

    def submit(self, mask, spines, connectors, shape, spacing=None):
        """Submit the current editing state; returns the request id."""
        request = GenerateRequest(
            id=self.next_request_id(),
            mask=mask,
            spines=list(spines),
            connectors=list(connectors),
            config=shape,
            spacing=spacing,
        )
        return self._submit(request)

    def submit_scene(self, scene):
        """Submit a Scene; returns the request id."""
        return self._submit(scene_to_request(scene, self.next_request_id(), self._config))

    def _submit(self, request):
        self.submitted += 1
        self.scheduler.submit(request)
        return request.id

    async def wait_idle(self):
        await self.scheduler.wait_idle()

    def close(self):
        self.scheduler.close()

    def _receive(self, response):
        if not self._gate.accept(response):
            return

        self.latest_response = response
        if response.ok:
            self.latest_pieces = response.piece_polygons
            self.latest_markup = response.renderable_markup
            self.latest_preview = response.preview
            self.generation_unavailable = False
        else:
            get_tracer().event(f"Generation unavailable: {response.error}", level="WARN")
            self.generation_unavailable = True

        if self._on_update:
            self._on_update(response)
