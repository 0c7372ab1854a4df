#!/usr/bin/env python3
"""
Amicus Brief Drafter
Builds Supreme Court amicus briefs in eight refinement waves from case research
"""

import logging

from flask import Flask, jsonify, request, send_file
from werkzeug.utils import secure_filename

from amicus_drafter import config
from amicus_drafter.processors.document_summarizer import DocumentSummarizer
from amicus_drafter.processors.eight_wave_processor import (
    TOTAL_WAVES,
    InvalidWaveError,
    InvalidWaveInputError,
    get_wave,
)
from amicus_drafter.processors.model_client import ModelError
from amicus_drafter.processors.wave_pipeline import (
    BriefPipeline,
    JobAlreadyRunningError,
    JobStateError,
    check_research_result,
)
from amicus_drafter.storage.case_store import RESEARCH_RESULT_TYPES, CaseStore, NotFoundError
from amicus_drafter.utils.docx_export import DOCX_MIMETYPE, export_brief
from amicus_drafter.utils.file_parser import allowed_file, parse_file
from amicus_drafter.utils.log import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_BYTES

store = CaseStore(config.PROJECTS_DIR)

# Built on first use so the app imports without an API key
pipeline = None
summarizer = None


def get_pipeline() -> BriefPipeline:
    global pipeline
    if pipeline is None:
        pipeline = BriefPipeline(store)
    return pipeline


def get_summarizer() -> DocumentSummarizer:
    global summarizer
    if summarizer is None:
        summarizer = DocumentSummarizer()
    return summarizer


def document_info(doc: dict) -> dict:
    """Document metadata without the extracted text"""
    info = {k: v for k, v in doc.items() if k not in ('text', 'path')}
    info['has_summary'] = isinstance(doc.get('summary'), dict)
    return info


# ============ ERRORS ============

@app.errorhandler(NotFoundError)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@app.errorhandler(InvalidWaveError)
@app.errorhandler(InvalidWaveInputError)
def handle_invalid_input(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(JobStateError)
@app.errorhandler(JobAlreadyRunningError)
def handle_job_conflict(e):
    return jsonify({'error': str(e)}), 409


@app.errorhandler(ModelError)
def handle_model_error(e):
    logger.error('Model call failed: %s', e)
    return jsonify({'error': f'Model call failed: {e}'}), 500


@app.errorhandler(413)
def handle_too_large(e):
    return jsonify({'error': f'File exceeds {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit'}), 413


# ============ CASES ============

@app.route('/')
def index():
    """List cases, newest first"""
    return jsonify({'cases': store.list_cases()})


@app.route('/case/new', methods=['POST'])
def create_case():
    """Create new amicus brief case"""
    data = request.json or {}
    case = store.create_case(data)
    return jsonify({'case_id': case['id']})


@app.route('/case/<case_id>')
def get_case(case_id):
    case = store.get_case(case_id)
    case['documents'] = {
        doc_id: document_info(doc) for doc_id, doc in case.get('documents', {}).items()
    }
    return jsonify(case)


@app.route('/case/<case_id>/upload', methods=['POST'])
def upload_document(case_id):
    """Upload a reference document to the case"""
    store.get_case(case_id)

    if 'file' not in request.files:
        return jsonify({'error': 'No file provided'}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    if not allowed_file(file.filename, config.ALLOWED_EXTENSIONS):
        return jsonify({'error': 'File type not allowed. Use PDF, DOCX, or TXT'}), 400

    doc_type = request.form.get('doc_type', 'other')
    filename = secure_filename(file.filename)
    file_path = store.case_dir(case_id) / 'uploads' / f"{secure_filename(doc_type)}_{filename}"
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file.save(file_path)

    try:
        text = parse_file(file_path)
    except Exception as e:
        logger.warning('Could not extract text from %s: %s', filename, e, extra={'case_id': case_id})
        return jsonify({'error': f'Could not read {filename}: {e}'}), 400

    document = store.add_document(case_id, {
        'filename': filename,
        'title': request.form.get('title') or filename,
        'citation': request.form.get('citation', ''),
        'doc_type': doc_type,
        'relevance': request.form.get('relevance', ''),
        'path': str(file_path),
        'text': text,
        'char_count': len(text),
    })
    logger.info('Uploaded %s (%d chars)', filename, len(text), extra={'case_id': case_id})

    return jsonify({
        'success': True,
        'doc_id': document['id'],
        'doc_type': doc_type,
        'filename': filename,
        'char_count': len(text),
        'selected': document['selected'],
    })


@app.route('/case/<case_id>/documents')
def list_documents(case_id):
    case = store.get_case(case_id)
    docs = [document_info(doc) for doc in case.get('documents', {}).values()]
    return jsonify({'documents': docs})


@app.route('/case/<case_id>/documents/<doc_id>/select', methods=['POST'])
def select_document(case_id, doc_id):
    data = request.json or {}
    if not isinstance(data.get('selected'), bool):
        return jsonify({'error': 'selected must be true or false'}), 400
    doc = store.set_document_selected(case_id, doc_id, data['selected'])
    return jsonify({'success': True, 'document': document_info(doc)})


@app.route('/case/<case_id>/documents/<doc_id>/summarize', methods=['POST'])
def summarize_document(case_id, doc_id):
    """AI summary of one reference document"""
    case = store.get_case(case_id)
    doc = store.get_document(case_id, doc_id)

    summary = get_summarizer().summarize(doc, case.get('case_name', ''))
    store.update_document(case_id, doc_id, summary=summary)
    return jsonify({'success': True, 'summary': summary})


@app.route('/case/<case_id>/research/<result_type>', methods=['POST'])
def save_research(case_id, result_type):
    """Store outline, strategy chat, justice analysis, history or reference brief"""
    if result_type not in RESEARCH_RESULT_TYPES:
        return jsonify({
            'error': f'Unknown result type: {result_type}',
            'allowed': list(RESEARCH_RESULT_TYPES),
        }), 400

    data = request.json or {}
    if 'results' not in data:
        return jsonify({'error': 'results is required'}), 400

    store.get_case(case_id)
    check_research_result(result_type, data['results'])
    store.save_research_result(case_id, result_type, data['results'])
    return jsonify({'success': True, 'result_type': result_type})


# ============ EIGHT-WAVE BRIEF JOBS ============

@app.route('/api/ai/eight-wave-brief', methods=['POST'])
def start_eight_wave_brief():
    data = request.json or {}
    case_id = data.get('caseId')
    if not case_id:
        return jsonify({'error': 'Case ID is required'}), 400

    job_config = data.get('config') or {}
    if not isinstance(job_config, dict):
        return jsonify({'error': 'config must be an object'}), 400

    job = get_pipeline().start_job(case_id, job_config)
    logger.info('Started eight-wave brief generation', extra={'case_id': case_id, 'job_id': job['id']})

    return jsonify({
        'success': True,
        'message': 'Eight-wave brief generation started in background',
        'jobId': job['id'],
        'status': 'queued',
        'wavesTotal': TOTAL_WAVES,
    })


@app.route('/api/ai/eight-wave-brief', methods=['GET'])
def get_eight_wave_jobs():
    job_id = request.args.get('jobId')
    case_id = request.args.get('caseId')
    if not job_id and not case_id:
        return jsonify({'error': 'Either jobId or caseId is required'}), 400

    jobs = [store.get_job(job_id)] if job_id else store.list_jobs(case_id)
    for job in jobs:
        job['logs'] = store.get_logs(job['id'])

    return jsonify({'success': True, 'jobs': jobs})


@app.route('/api/ai/eight-wave-brief/logs')
def get_wave_logs():
    job_id = request.args.get('jobId')
    if not job_id:
        return jsonify({'error': 'jobId is required'}), 400

    wave_number = request.args.get('waveNumber', type=int)
    logs = store.get_logs(job_id, wave_number)
    return jsonify({'success': True, 'logs': logs, 'jobId': job_id, 'waveNumber': wave_number})


@app.route('/api/ai/eight-wave-brief/thoughts')
def get_wave_thoughts():
    job_id = request.args.get('jobId')
    if not job_id:
        return jsonify({'error': 'jobId is required'}), 400

    job = store.get_job(job_id)
    return jsonify({
        'success': True,
        'thoughts': store.get_thoughts(job_id),
        'jobId': job_id,
        'jobStatus': job['job_status'],
        'currentWave': job['current_wave'],
    })


@app.route('/api/ai/eight-wave-brief/<job_id>/waves/<int:wave_number>')
def get_wave_result(job_id, wave_number):
    get_wave(wave_number)
    result = store.get_wave_result(job_id, wave_number)
    if result is None:
        return jsonify({'error': f'Wave {wave_number} has not completed for job {job_id}'}), 404
    return jsonify(result)


@app.route('/api/ai/eight-wave-brief/<job_id>/cancel', methods=['POST'])
def cancel_eight_wave_brief(job_id):
    job = get_pipeline().cancel_job(job_id)
    return jsonify({'success': True, 'jobId': job_id, 'status': job['job_status'], 'cancelRequested': True})


@app.route('/api/ai/eight-wave-brief/<job_id>/resume', methods=['POST'])
def resume_eight_wave_brief(job_id):
    job = get_pipeline().resume_job(job_id)
    return jsonify({'success': True, 'jobId': job_id, 'status': job['job_status']})


@app.route('/case/<case_id>/brief/<job_id>/download')
def download_brief(case_id, job_id):
    """Download the job's latest brief as a Word document"""
    case = store.get_case(case_id)
    job = store.get_job(job_id)
    if job['case_id'] != case_id:
        return jsonify({'error': 'Job does not belong to this case'}), 404

    brief = store.get_brief(job_id)
    if not brief or not brief.get('content'):
        return jsonify({'error': 'Brief not generated yet'}), 404

    output_path = export_brief(case, brief['content'],
                               store.case_dir(case_id) / 'jobs' / job_id / 'Amicus_Brief.docx')

    return send_file(
        output_path,
        as_attachment=True,
        download_name=f"Amicus_Brief_{case.get('case_name', 'draft').replace(' ', '_')}.docx",
        mimetype=DOCX_MIMETYPE,
    )


if __name__ == '__main__':
    print("\n" + "="*60)
    print("AMICUS BRIEF DRAFTER")
    print("="*60)
    print(f"\nServer starting at: http://127.0.0.1:5003")
    print(f"Cases stored in: {config.PROJECTS_DIR}")
    print("\nUpload research, approve an outline, then run the eight waves.")
    print("Press Ctrl+C to stop.\n")

    app.run(debug=True, host='127.0.0.1', port=5003)
