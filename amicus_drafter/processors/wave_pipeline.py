"""
Wave Pipeline

Runs the eight waves for one job as a fold: each wave's brief is the next
wave's input. A wave's result is written to the case store before the next
wave starts, so an interrupted job resumes at the first wave without a
stored result instead of starting over.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from amicus_drafter import config
from amicus_drafter.processors.brief_analysis import count_citations
from amicus_drafter.processors.eight_wave_processor import (
    TOTAL_WAVES,
    WAVE_NAMES,
    InvalidWaveInputError,
    WaveContext,
    WaveResult,
    check_context,
    execute_wave,
)
from amicus_drafter.processors.model_client import ModelClient, ModelError
from amicus_drafter.storage.case_store import THOUGHT_PREFIX, CaseStore

logger = logging.getLogger(__name__)

DEFAULT_JOB_CONFIG = {
    'targetWordCount': config.TARGET_WORD_COUNT,
    'model': config.DEFAULT_MODEL,
}

FINISHED_STATUSES = ('completed', 'failed', 'cancelled')
RESUMABLE_STATUSES = ('failed', 'cancelled')
# A job left in one of these with no runner was interrupted mid-run
ACTIVE_STATUSES = ('queued', 'in_progress')


class JobAlreadyRunningError(RuntimeError):
    """A second runner tried to advance a job that is already running."""


class JobStateError(RuntimeError):
    """The requested action does not apply to the job's current status."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ModelError) and error.retryable


def _research(case: Dict, result_type: str):
    entry = (case.get('research_results') or {}).get(result_type) or {}
    return entry.get('results')


def _outline_text(outline) -> str:
    if outline is None:
        return ''
    if isinstance(outline, str):
        return outline
    if isinstance(outline, dict):
        for key in ('outline', 'content', 'text'):
            if isinstance(outline.get(key), str):
                return outline[key]
    return json.dumps(outline, indent=2)


def _reference_brief(references):
    # A list of reference briefs: the first one sets the style
    if isinstance(references, list):
        return references[0] if references else None
    return references


def gather_context(case: Dict) -> WaveContext:
    """Assemble the wave context from a stored case record."""
    chat = _research(case, 'strategy_chat') or []
    if isinstance(chat, dict):
        chat = chat.get('messages') or []

    selected = [doc for doc in (case.get('documents') or {}).values() if doc.get('selected')]
    documents = [
        {
            'id': doc['id'],
            'title': doc.get('title') or doc.get('filename', ''),
            'citation': doc.get('citation', ''),
            'type': doc.get('doc_type', ''),
            'relevance': doc.get('relevance', ''),
            'content': doc.get('text', ''),
        }
        for doc in selected
    ]
    summaries = [
        dict(doc['summary'], document_id=doc['id'])
        for doc in selected
        if isinstance(doc.get('summary'), dict)
    ]

    return WaveContext.from_dict({
        'case_information': {
            'case_id': case['id'],
            'case_name': case.get('case_name'),
            'court_level': case.get('court_level'),
            'constitutional_question': case.get('constitutional_question'),
            'transcript': case.get('transcript'),
        },
        'selected_documents': documents,
        'document_summaries': summaries,
        'justice_analysis': _research(case, 'justice_analysis'),
        'historical_research': _research(case, 'historical_research'),
        'reference_brief': _reference_brief(_research(case, 'brief_references')),
        'strategy_chat_history': chat,
        'approved_outline': _outline_text(_research(case, 'approved_outline')),
    })


def check_research_result(result_type: str, results) -> None:
    """Raise InvalidWaveInputError if a research result could not feed the waves."""
    case = {'id': 'check', 'research_results': {result_type: {'results': results}}}
    check_context(gather_context(case))


class BriefPipeline:
    """Owns the lifecycle of eight-wave generation jobs."""

    def __init__(
        self,
        store: CaseStore,
        client: Optional[ModelClient] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        executor: Callable[..., WaveResult] = execute_wave,
    ):
        self.store = store
        self.client = client or ModelClient()
        self.max_retries = config.WAVE_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = (
            config.WAVE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self.sleep = sleep
        self.executor = executor
        self._running = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_job(self, case_id: str, job_config: Optional[Dict] = None,
                  background: bool = True) -> Dict:
        """Create a job for the case and start running it."""
        context = gather_context(self.store.get_case(case_id))
        check_context(context)
        if not context.approved_outline.strip():
            raise InvalidWaveInputError('Case has no approved outline')

        merged = dict(DEFAULT_JOB_CONFIG, **(job_config or {}))
        try:
            merged['targetWordCount'] = int(merged['targetWordCount'])
        except (TypeError, ValueError):
            raise InvalidWaveInputError(f"Invalid targetWordCount: {merged['targetWordCount']!r}")
        if merged['targetWordCount'] <= 0:
            raise InvalidWaveInputError('targetWordCount must be positive')

        job = self.store.create_job(case_id, merged, TOTAL_WAVES)
        logger.info('Created brief generation job %s', job['id'],
                    extra={'case_id': case_id, 'job_id': job['id']})
        return self._launch(job['id'], background, context)

    def run_job(self, job_id: str, context: Optional[WaveContext] = None) -> Dict:
        """Run the job in the calling thread until it completes, fails or is cancelled."""
        self._claim(job_id)
        try:
            return self._run(job_id, context)
        finally:
            self._release(job_id)

    def cancel_job(self, job_id: str) -> Dict:
        """Ask the job to stop before its next wave."""
        job = self.store.get_job(job_id)
        if job['job_status'] in FINISHED_STATUSES:
            raise JobStateError(f"Job {job_id} is already {job['job_status']}")
        self.store.append_log(job_id, None, None, 'Cancellation requested', 'warning')
        return self.store.update_job(job_id, cancel_requested=True)

    def resume_job(self, job_id: str, background: bool = True) -> Dict:
        """Re-run a job from its first incomplete wave.

        Failed and cancelled jobs resume, and so does a queued or in-progress
        job that has no runner, which is what a process restart leaves behind.
        """
        job = self.store.get_job(job_id)
        status = job['job_status']
        if status in ACTIVE_STATUSES and self.is_running(job_id):
            raise JobAlreadyRunningError(f'Job {job_id} is already running')
        if status not in RESUMABLE_STATUSES + ACTIVE_STATUSES:
            raise JobStateError(f'Job {job_id} is {status}; only unfinished jobs resume')

        context = gather_context(self.store.get_case(job['case_id']))
        check_context(context)

        if status in ACTIVE_STATUSES:
            self.store.append_log(job_id, None, None,
                                  f'Job was interrupted while {status}', 'warning')
            logger.warning('Resuming interrupted job %s', job_id, extra={'job_id': job_id})
        self.store.update_job(job_id, job_status='queued', cancel_requested=False)
        return self._launch(job_id, background, context)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._running

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def _claim(self, job_id: str) -> None:
        with self._lock:
            if job_id in self._running:
                raise JobAlreadyRunningError(f'Job {job_id} is already running')
            self._running.add(job_id)

    def _release(self, job_id: str) -> None:
        with self._lock:
            self._running.discard(job_id)

    def _launch(self, job_id: str, background: bool, context: Optional[WaveContext] = None) -> Dict:
        if not background:
            return self.run_job(job_id, context)

        self._claim(job_id)
        thread = threading.Thread(
            target=self._run_in_background,
            args=(job_id, context),
            name=f'wave-job-{job_id[:8]}',
            daemon=True,
        )
        thread.start()
        return self.store.get_job(job_id)

    def _run_in_background(self, job_id: str, context: Optional[WaveContext]) -> None:
        try:
            self._run(job_id, context)
        except Exception:
            # The failure is already recorded on the job
            logger.exception('Background processing failed for job %s', job_id,
                             extra={'job_id': job_id})
        finally:
            self._release(job_id)

    def _resume_point(self, job_id: str) -> Tuple[int, Optional[str]]:
        """First wave without a stored result, and the brief to feed it."""
        brief = None
        for wave_number in range(1, TOTAL_WAVES + 1):
            stored = self.store.get_wave_result(job_id, wave_number)
            if stored is None:
                return wave_number, brief
            brief = stored.get('briefContent')
        return TOTAL_WAVES + 1, brief

    def _run(self, job_id: str, context: Optional[WaveContext] = None) -> Dict:
        job = self.store.get_job(job_id)
        if context is None:
            context = gather_context(self.store.get_case(job['case_id']))
        start_wave, current_brief = self._resume_point(job_id)

        self.store.update_job(
            job_id,
            job_status='in_progress',
            started_at=job.get('started_at') or _now(),
            error_message=None,
            failed_wave=None,
            completed_at=None,
        )
        if start_wave > 1:
            self.store.append_log(job_id, None, None,
                                  f'Resuming after wave {start_wave - 1}')
        logger.info('Running job %s from wave %d', job_id, start_wave, extra={'job_id': job_id})

        for wave_number in range(start_wave, TOTAL_WAVES + 1):
            if self.store.get_job(job_id).get('cancel_requested'):
                self.store.append_log(job_id, wave_number, WAVE_NAMES[wave_number],
                                      f'Job cancelled before wave {wave_number}', 'warning')
                logger.info('Job %s cancelled before wave %d', job_id, wave_number,
                            extra={'job_id': job_id})
                return self.store.update_job(job_id, job_status='cancelled', completed_at=_now())

            result = self._process_wave(job_id, wave_number, context, current_brief, job['config'])
            current_brief = result.brief_content

        brief = self.store.get_brief(job_id) or {}
        logger.info('Completed eight-wave processing for job %s', job_id, extra={'job_id': job_id})
        return self.store.update_job(
            job_id,
            job_status='completed',
            completed_at=_now(),
            final_brief_id=job_id,
            final_word_count=brief.get('word_count', 0),
            final_citation_count=brief.get('citation_count', 0),
        )

    def _process_wave(self, job_id: str, wave_number: int, context: WaveContext,
                      current_brief: Optional[str], job_config: Dict) -> WaveResult:
        name = WAVE_NAMES[wave_number]

        try:
            self.store.update_job(job_id, current_wave=wave_number)
            self.store.update_job_wave(job_id, wave_number, status='running')
            self.store.append_log(job_id, wave_number, name, f'Starting {name}',
                                  metadata={'startTime': _now()})
            logger.info('Starting wave %d: %s', wave_number, name,
                        extra={'job_id': job_id, 'wave': wave_number})

            result = self._execute_with_retry(job_id, wave_number, context, current_brief, job_config)
            self._commit_wave(job_id, wave_number, result)
        except Exception as e:
            self._fail_wave(job_id, wave_number, e)
            raise

        logger.info('Completed wave %d: %s (%d words)', wave_number, name, result.word_count,
                    extra={'job_id': job_id, 'wave': wave_number})
        return result

    def _commit_wave(self, job_id: str, wave_number: int, result: WaveResult) -> None:
        name = WAVE_NAMES[wave_number]
        store = self.store

        store.save_brief(
            job_id,
            result.brief_content,
            wave_number,
            result.word_count,
            count_citations(result.brief_content or ''),
        )
        # The stored wave result is the commit point for resumption
        store.save_wave_result(job_id, wave_number, result.to_dict())

        for message in result.logs:
            store.append_log(job_id, wave_number, name, message, 'debug')
        for thought in result.thoughts:
            store.append_log(
                job_id, wave_number, name, THOUGHT_PREFIX + thought.thought,
                metadata={
                    'thoughtId': thought.id,
                    'thoughtType': thought.type,
                    'mood': thought.mood,
                    'details': thought.details,
                    'timestamp': thought.timestamp,
                },
            )

        store.update_job_wave(
            job_id, wave_number,
            status='skipped' if result.skipped else 'completed',
            wordCount=result.word_count,
            citationsAdded=result.citations_added,
        )
        store.append_log(
            job_id, wave_number, name, f'Completed {name}',
            metadata={
                'endTime': _now(),
                'wordCount': result.word_count,
                'citationsAdded': result.citations_added,
                'sourcesUsed': result.sources_used,
            },
        )

    def _fail_wave(self, job_id: str, wave_number: int, error: Exception) -> None:
        name = WAVE_NAMES[wave_number]
        reason = str(error) or type(error).__name__
        logger.error('Wave %d (%s) failed: %s', wave_number, name, reason,
                     extra={'job_id': job_id, 'wave': wave_number})

        self.store.update_job(
            job_id,
            job_status='failed',
            failed_wave=wave_number,
            error_message=f'Wave {wave_number} ({name}) failed: {reason}',
            completed_at=_now(),
        )
        self.store.update_job_wave(job_id, wave_number, status='failed', error=reason)
        self.store.append_log(job_id, wave_number, name, f'Failed {name}: {reason}', 'error',
                              {'error': reason, 'errorType': type(error).__name__})

    def _log_retry(self, job_id: str, wave_number: int, retry_state) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep
        attempt = retry_state.attempt_number
        self.store.append_log(
            job_id, wave_number, WAVE_NAMES[wave_number],
            f'Retrying wave {wave_number} in {delay:.0f}s after: {error}', 'warning',
            {'attempt': attempt, 'errorType': type(error).__name__},
        )
        logger.warning('Wave %d attempt %d failed (%s); retrying in %.1fs',
                       wave_number, attempt, error, delay,
                       extra={'job_id': job_id, 'wave': wave_number})

    def _execute_with_retry(self, job_id: str, wave_number: int, context: WaveContext,
                            current_brief: Optional[str], job_config: Dict) -> WaveResult:
        retrying = Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds),
            sleep=self.sleep,
            before_sleep=lambda state: self._log_retry(job_id, wave_number, state),
            reraise=True,
        )
        return retrying(
            self.executor,
            wave_number,
            context,
            current_brief,
            job_id,
            client=self.client,
            target_word_count=job_config.get('targetWordCount'),
            model=job_config.get('model'),
        )
