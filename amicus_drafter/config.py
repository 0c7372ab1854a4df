"""
Configuration
Settings read from the environment (and a local .env file)
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')

# Short alias ('sonnet', 'opus', 'haiku') or a full model identifier
DEFAULT_MODEL = os.getenv('AMICUS_MODEL', 'sonnet')

# Wave generations run to many thousands of words
MODEL_TIMEOUT_SECONDS = float(os.getenv('AMICUS_MODEL_TIMEOUT', '600'))

WAVE_MAX_RETRIES = int(os.getenv('AMICUS_WAVE_MAX_RETRIES', '2'))
WAVE_RETRY_BACKOFF_SECONDS = float(os.getenv('AMICUS_WAVE_RETRY_BACKOFF', '5'))

TARGET_WORD_COUNT = int(os.getenv('AMICUS_TARGET_WORD_COUNT', '6000'))

PROJECTS_DIR = Path(os.getenv('AMICUS_PROJECTS_DIR', str(BASE_DIR / 'projects')))

MAX_UPLOAD_BYTES = int(os.getenv('AMICUS_MAX_UPLOAD_BYTES', str(50 * 1024 * 1024)))

ALLOWED_EXTENSIONS = {'pdf', 'txt', 'docx'}

LOG_LEVEL = os.getenv('AMICUS_LOG_LEVEL', 'INFO')
