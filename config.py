# config.py - Configuration and constants for the attendance capture core

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Record service (remote mode)
RECORD_SERVER_URL = os.getenv('RECORD_SERVER_URL') or None
HEALTH_CHECK_TIMEOUT = float(os.getenv('HEALTH_CHECK_TIMEOUT', '2'))
REMOTE_REQUEST_TIMEOUT = float(os.getenv('REMOTE_REQUEST_TIMEOUT', '10'))

# Local (on-device) record store
LOCAL_STORE_PATH = os.getenv('LOCAL_STORE_PATH') or str(Path('data') / 'local_store.json')
SERVER_URL_PATH = os.getenv('SERVER_URL_PATH') or str(Path('data') / 'server_url.json')

# Record service (server side)
SERVER_DB_PATH = os.getenv('SERVER_DB_PATH', str(Path('data') / 'facexam.db'))
SERVER_HOST = os.getenv('SERVER_HOST', '0.0.0.0')
SERVER_PORT = int(os.getenv('SERVER_PORT', '3001'))
SERVER_DEBUG = os.getenv('SERVER_DEBUG', 'False').lower() in ('true', '1', 'yes')
MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # base64 photos travel inside records

# Descriptor matching
MATCH_DISTANCE_THRESHOLD = float(os.getenv('MATCH_DISTANCE_THRESHOLD', '0.6'))
MATCH_MIN_SIMILARITY = float(os.getenv('MATCH_MIN_SIMILARITY', '0.65'))
DETECTION_MIN_SCORE = float(os.getenv('DETECTION_MIN_SCORE', '0.5'))

# Capture loop
CAPTURE_INTERVAL_SECONDS = max(0.05, float(os.getenv('CAPTURE_INTERVAL_SECONDS', '0.5')))
LOW_CONFIDENCE_NOTICE_COOLDOWN = 3.0  # seconds
NO_MATCH_NOTICE_COOLDOWN = 5.0  # seconds
ALREADY_MARKED_NOTICE_COOLDOWN = 5.0  # seconds, per student

# Camera configuration
CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '1280'))
CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '720'))
CAMERA_WARMUP_FRAMES = int(os.getenv('CAMERA_WARMUP_FRAMES', '3'))
CAMERA_BUFFER_SIZE = int(os.getenv('CAMERA_BUFFER_SIZE', '2'))

# Logging
LOG_DIR = Path(os.getenv('LOG_DIR', 'logs'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
