"""
Extraction pipeline: model text -> JSON payload -> EventRecords -> MaterializedEvents.

process_response() is pure and safe to call from any thread. ExtractionSession
adds the asynchronous model call on top: each submit() runs inference on a
background thread and supersedes earlier requests, whose results are dropped.
"""

import threading
from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Callable, Optional, Tuple

from PIL import Image

from kairos.event_decoder import decode
from kairos.event_materializer import materialize_all
from kairos.event_models import EventRecord, MaterializedEvent
from kairos.exceptions import InferenceError, KairosError, NoEventsFound
from kairos.image_llm_client import ImageLLMClient, build_prompt
from kairos.logging_helper import Log
from kairos.payload_extractor import extract
from kairos.settings_manager import MaterializationPolicy


@dataclass(frozen=True)
class ExtractionResult:
    """Events extracted from one model response."""
    events: Tuple[MaterializedEvent, ...]
    records: Tuple[EventRecord, ...]
    dropped: Tuple[Tuple[int, KairosError], ...] = ()


def process_response(
    raw: str,
    reference_tz: Optional[tzinfo] = None,
    policy: Optional[MaterializationPolicy] = None,
) -> ExtractionResult:
    """
    Run the full text-to-events pipeline on a model response.

    Elements that fail decoding or have an unparsable start are reported in
    `dropped` by their position in the payload array.

    Raises:
        NoJsonFound: no JSON payload in the response
        JsonSyntaxError: payload is not a valid JSON array
        NoEventsFound: nothing survived decoding and materialization
    """
    Log.section("Extraction Pipeline")
    payload = extract(raw)
    results = decode(payload)

    dropped = [(r.index, r.error) for r in results if not r.ok]
    decoded = [r for r in results if r.ok]
    records = [r.record for r in decoded]

    events, unparsable = materialize_all(records, reference_tz, policy)
    dropped.extend((decoded[i].index, error) for i, error in unparsable)
    dropped.sort(key=lambda item: item[0])

    if not events:
        Log.warn("No usable events in model response")
        Log.kv({"stage": "pipeline", "result": "no_events", "dropped": len(dropped)})
        raise NoEventsFound()

    Log.kv({"stage": "pipeline", "result": "success", "events": len(events), "dropped": len(dropped)})
    return ExtractionResult(events=tuple(events), records=tuple(records), dropped=tuple(dropped))


class ExtractionSession:
    """
    Runs model inference off the calling thread, one request at a time.

    A new submit() supersedes any request still in flight. The superseded
    inference is not cancelled; its result is ignored when it arrives.
    """

    def __init__(
        self,
        client: ImageLLMClient,
        reference_tz: Optional[tzinfo] = None,
        policy: Optional[MaterializationPolicy] = None,
    ):
        self.client = client
        self.reference_tz = reference_tz
        self.policy = policy
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def current_generation(self) -> int:
        with self._lock:
            return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self.current_generation

    def run(self, image: Image.Image, prompt: Optional[str] = None) -> ExtractionResult:
        """Run inference and extraction synchronously."""
        prompt = prompt or build_prompt(date.today().isoformat())
        raw = self.client.generate(image, prompt)
        Log.info(f"Model response received ({len(raw)} chars)")
        return process_response(raw, self.reference_tz, self.policy)

    def submit(
        self,
        image: Image.Image,
        on_result: Callable[[ExtractionResult], None],
        on_error: Optional[Callable[[KairosError], None]] = None,
        prompt: Optional[str] = None,
    ) -> threading.Thread:
        """
        Start a request on a background thread.

        on_result / on_error are only called if no newer request was
        submitted in the meantime.

        Returns:
            The worker thread (already started)
        """
        with self._lock:
            self._generation += 1
            generation = self._generation

        def _fail(error: KairosError):
            if not self.is_current(generation):
                Log.info(f"Ignoring error from superseded request {generation}: {error}")
                return
            Log.error(f"Extraction failed: {error}")
            if on_error is not None:
                on_error(error)

        def _worker():
            try:
                result = self.run(image, prompt)
            except KairosError as e:
                _fail(e)
                return
            except Exception as e:
                error = InferenceError(f"Unexpected error during extraction: {e}")
                error.__cause__ = e
                _fail(error)
                return

            if not self.is_current(generation):
                Log.info(f"Ignoring stale result from request {generation}")
                Log.kv({"stage": "session", "result": "stale", "generation": generation})
                return
            try:
                on_result(result)
            except Exception as e:
                Log.error(f"Result callback failed: {e}")
                error = InferenceError(f"Result callback failed: {e}")
                error.__cause__ = e
                if on_error is not None:
                    on_error(error)

        worker = threading.Thread(
            target=_worker,
            daemon=True,
            name=f"KairosExtraction-{generation}",
        )
        worker.start()
        return worker
