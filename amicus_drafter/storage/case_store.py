"""
Case Store
JSON-on-disk persistence for cases, documents, research results and wave jobs

Layout under the projects directory:

    <case_id>/case.json
    <case_id>/uploads/
    <case_id>/jobs/<job_id>/job.json
    <case_id>/jobs/<job_id>/wave_<n>.json
    <case_id>/jobs/<job_id>/brief.json
    <case_id>/jobs/<job_id>/logs.jsonl
"""

import json
import logging
import os
import re
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

RESEARCH_RESULT_TYPES = (
    'approved_outline',
    'strategy_chat',
    'justice_analysis',
    'historical_research',
    'brief_references',
)

THOUGHT_PREFIX = '[THOUGHT] '

_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


class NotFoundError(LookupError):
    """Unknown case, document or job."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_id(value: str, kind: str) -> str:
    if not value or not _ID_PATTERN.match(str(value)):
        raise NotFoundError(f'{kind} not found: {value}')
    return str(value)


class CaseStore:
    """Reads and writes case and job records under one root directory."""

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        # Job directories never move; log ids count up per job
        self._job_dirs: Dict[str, Path] = {}
        self._log_counts: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _write_json(self, path: Path, data) -> None:
        """Write atomically: readers see the old file or the new one, never half."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix='.tmp-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @staticmethod
    def _read_json(path: Path):
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def case_dir(self, case_id: str) -> Path:
        return self.root / _check_id(case_id, 'Case')

    def _job_dir(self, job_id: str) -> Path:
        job_id = _check_id(job_id, 'Job')
        job_dir = self._job_dirs.get(job_id)
        if job_dir is None:
            matches = list(self.root.glob(f'*/jobs/{job_id}/job.json'))
            if not matches:
                raise NotFoundError(f'Job not found: {job_id}')
            job_dir = self._job_dirs[job_id] = matches[0].parent
        return job_dir

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------

    def create_case(self, data: Dict) -> Dict:
        case_id = uuid.uuid4().hex[:8]
        case = {
            'id': case_id,
            'case_name': data.get('case_name') or 'New Case',
            'court_level': data.get('court_level') or 'Supreme Court',
            'constitutional_question': data.get('constitutional_question', ''),
            'transcript': data.get('transcript', ''),
            'created': _now(),
            'documents': {},
            'research_results': {},
        }
        with self._lock:
            (self.case_dir(case_id) / 'uploads').mkdir(parents=True, exist_ok=True)
            self.save_case(case)
        logger.info('Created case %s', case_id, extra={'case_id': case_id})
        return case

    def get_case(self, case_id: str) -> Dict:
        path = self.case_dir(case_id) / 'case.json'
        if not path.exists():
            raise NotFoundError(f'Case not found: {case_id}')
        return self._read_json(path)

    def save_case(self, case: Dict) -> None:
        with self._lock:
            self._write_json(self.case_dir(case['id']) / 'case.json', case)

    def list_cases(self) -> List[Dict]:
        cases = []
        for path in self.root.glob('*/case.json'):
            case = self._read_json(path)
            cases.append({
                'id': case['id'],
                'case_name': case.get('case_name', 'Untitled'),
                'created': case.get('created', ''),
                'documents': len(case.get('documents', {})),
            })
        cases.sort(key=lambda c: c['created'], reverse=True)
        return cases

    def add_document(self, case_id: str, document: Dict) -> Dict:
        with self._lock:
            case = self.get_case(case_id)
            doc_id = uuid.uuid4().hex[:8]
            document = dict(document, id=doc_id)
            document.setdefault('selected', True)
            case['documents'][doc_id] = document
            self.save_case(case)
        return document

    def get_document(self, case_id: str, doc_id: str) -> Dict:
        case = self.get_case(case_id)
        if doc_id not in case.get('documents', {}):
            raise NotFoundError(f'Document not found: {doc_id}')
        return case['documents'][doc_id]

    def update_document(self, case_id: str, doc_id: str, **fields) -> Dict:
        with self._lock:
            case = self.get_case(case_id)
            if doc_id not in case.get('documents', {}):
                raise NotFoundError(f'Document not found: {doc_id}')
            case['documents'][doc_id].update(fields)
            self.save_case(case)
            return case['documents'][doc_id]

    def set_document_selected(self, case_id: str, doc_id: str, selected: bool) -> Dict:
        return self.update_document(case_id, doc_id, selected=bool(selected))

    def save_research_result(self, case_id: str, result_type: str, results) -> None:
        if result_type not in RESEARCH_RESULT_TYPES:
            raise ValueError(f'Unknown research result type: {result_type}')
        with self._lock:
            case = self.get_case(case_id)
            case['research_results'][result_type] = {'results': results, 'updated': _now()}
            self.save_case(case)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, case_id: str, job_config: Dict, total_waves: int) -> Dict:
        self.get_case(case_id)
        job_id = uuid.uuid4().hex
        job = {
            'id': job_id,
            'case_id': case_id,
            'job_status': 'queued',
            'config': job_config,
            'current_wave': 0,
            'waves': {str(n): {'status': 'pending'} for n in range(1, total_waves + 1)},
            'created_at': _now(),
            'started_at': None,
            'completed_at': None,
            'error_message': None,
            'failed_wave': None,
            'cancel_requested': False,
        }
        with self._lock:
            job_dir = self.case_dir(case_id) / 'jobs' / job_id
            self._write_json(job_dir / 'job.json', job)
            self._job_dirs[job_id] = job_dir
            self._log_counts[job_id] = 0
        return job

    def get_job(self, job_id: str) -> Dict:
        return self._read_json(self._job_dir(job_id) / 'job.json')

    def update_job(self, job_id: str, **fields) -> Dict:
        with self._lock:
            job_dir = self._job_dir(job_id)
            job = self._read_json(job_dir / 'job.json')
            job.update(fields)
            self._write_json(job_dir / 'job.json', job)
            return job

    def update_job_wave(self, job_id: str, wave_number: int, **fields) -> Dict:
        with self._lock:
            job_dir = self._job_dir(job_id)
            job = self._read_json(job_dir / 'job.json')
            job['waves'].setdefault(str(wave_number), {}).update(fields, timestamp=_now())
            self._write_json(job_dir / 'job.json', job)
            return job

    def list_jobs(self, case_id: str) -> List[Dict]:
        jobs_dir = self.case_dir(case_id) / 'jobs'
        jobs = [self._read_json(p) for p in jobs_dir.glob('*/job.json')]
        jobs.sort(key=lambda j: j['created_at'], reverse=True)
        return jobs

    # ------------------------------------------------------------------
    # Wave results and the evolving brief
    # ------------------------------------------------------------------

    def save_wave_result(self, job_id: str, wave_number: int, result: Dict) -> None:
        """Store a wave result keyed by (job_id, wave_number); re-saving overwrites."""
        with self._lock:
            self._write_json(self._job_dir(job_id) / f'wave_{int(wave_number)}.json', result)

    def get_wave_result(self, job_id: str, wave_number: int) -> Optional[Dict]:
        path = self._job_dir(job_id) / f'wave_{int(wave_number)}.json'
        if not path.exists():
            return None
        return self._read_json(path)

    def list_wave_results(self, job_id: str) -> List[Dict]:
        job_dir = self._job_dir(job_id)
        results = [self._read_json(p) for p in job_dir.glob('wave_*.json')]
        results.sort(key=lambda r: r['waveNumber'])
        return results

    def save_brief(self, job_id: str, content: str, wave_number: int,
                   word_count: int, citation_count: int) -> None:
        brief = {
            'id': job_id,
            'content': content,
            'wave_number': wave_number,
            'word_count': word_count,
            'citation_count': citation_count,
            'updated': _now(),
        }
        with self._lock:
            self._write_json(self._job_dir(job_id) / 'brief.json', brief)

    def get_brief(self, job_id: str) -> Optional[Dict]:
        path = self._job_dir(job_id) / 'brief.json'
        if not path.exists():
            return None
        return self._read_json(path)

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def append_log(self, job_id: str, wave_number: Optional[int], wave_name: Optional[str],
                   message: str, log_level: str = 'info', metadata: Dict = None) -> Dict:
        with self._lock:
            path = self._job_dir(job_id) / 'logs.jsonl'
            count = self._log_counts.get(job_id)
            if count is None:
                count = 0
                if path.exists():
                    with open(path, 'r', encoding='utf-8') as f:
                        count = sum(1 for line in f if line.strip())
            entry = {
                'id': count + 1,
                'job_id': job_id,
                'wave_number': wave_number,
                'wave_name': wave_name,
                'log_level': log_level,
                'message': message,
                'metadata': metadata or {},
                'created_at': _now(),
            }
            with open(path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry) + '\n')
            self._log_counts[job_id] = count + 1
            return entry

    def get_logs(self, job_id: str, wave_number: Optional[int] = None) -> List[Dict]:
        path = self._job_dir(job_id) / 'logs.jsonl'
        if not path.exists():
            return []
        with open(path, 'r', encoding='utf-8') as f:
            logs = [json.loads(line) for line in f if line.strip()]
        if wave_number is not None:
            logs = [entry for entry in logs if entry['wave_number'] == wave_number]
        return logs

    def get_thoughts(self, job_id: str) -> List[Dict]:
        thoughts = []
        for entry in self.get_logs(job_id):
            if not entry['message'].startswith(THOUGHT_PREFIX):
                continue
            metadata = entry.get('metadata') or {}
            thoughts.append({
                'id': metadata.get('thoughtId') or entry['id'],
                'timestamp': metadata.get('timestamp') or entry['created_at'],
                'type': metadata.get('thoughtType') or 'thinking',
                'wave': entry['wave_number'],
                'waveName': entry['wave_name'],
                'thought': entry['message'][len(THOUGHT_PREFIX):],
                'details': metadata.get('details'),
                'mood': metadata.get('mood') or 'focused',
            })
        return thoughts
