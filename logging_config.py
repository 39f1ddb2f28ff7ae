"""
Logging configuration for the attendance capture core and the record service
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path


def setup_logging(app=None, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Configure root logging for the process.

    Args:
        app: optional Flask app instance (its logger level is aligned too)
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: directory for the rotating log files
        max_log_size: maximum size of one log file (bytes)
        backup_count: number of rotated files to keep
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'attendance_core.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'errors.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Drop handlers from a previous setup_logging() call
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    for name in ('storage', 'recognition', 'api'):
        logging.getLogger(name).setLevel(level)

    if app is not None:
        app.logger.setLevel(level)

    root_logger.info("=" * 50)
    root_logger.info("ATTENDANCE CORE STARTUP")
    root_logger.info(f"Timestamp: {datetime.now().isoformat()}")
    root_logger.info(f"Log Level: {logging.getLevelName(level)}")
    root_logger.info(f"Log Directory: {log_dir.absolute()}")
    root_logger.info("=" * 50)


class StorageLogger:
    """Logger for record store routing and degradations"""

    def __init__(self):
        self.logger = logging.getLogger('storage')

    def log_fallback(self, operation, table, error):
        """Remote call failed and is being re-issued locally"""
        self.logger.warning(f"Remote {operation} on {table} failed, falling back to local: {error}")

    def log_missing_index(self, table, field):
        self.logger.warning(f"Index not found for {table}.{field}, using filter instead")

    def log_mode_change(self, endpoint):
        mode = f"remote ({endpoint})" if endpoint else "local"
        self.logger.info(f"Record store mode: {mode}")

    def log_error(self, operation, error_message):
        self.logger.error(f"Store Error - Operation: {operation}, Error: {error_message}")


class RecognitionLogger:
    """Logger for face recognition and attendance marking"""

    def __init__(self):
        self.logger = logging.getLogger('recognition')

    def log_face_recognized(self, name, confidence, student_id=None):
        student_info = f", Student ID: {student_id}" if student_id else ""
        self.logger.info(f"Face recognized - Name: {name}, Confidence: {confidence:.3f}{student_info}")

    def log_attendance_marked(self, name, student_id, method, confidence=None):
        confidence_info = f", Confidence: {confidence:.3f}" if confidence is not None else ""
        self.logger.info(
            f"Attendance marked - Name: {name}, Student ID: {student_id}, Method: {method}{confidence_info}"
        )

    def log_already_marked(self, name, student_id):
        self.logger.debug(f"Already marked - Name: {name}, Student ID: {student_id}")

    def log_match_scores(self, scores):
        """Log every candidate score, best first"""
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        rendered = ", ".join(f"{student_id}: {score * 100:.1f}%" for student_id, score in scores)
        self.logger.debug(f"Match scores - {rendered or 'none'}")

    def log_recognition_error(self, error_message):
        self.logger.error(f"Recognition error - {error_message}")


class APILogger:
    """Logger for record service API calls"""

    def __init__(self):
        self.logger = logging.getLogger('api')

    def log_request(self, method, endpoint, table=None, ip_address=None):
        table_info = f", Table: {table}" if table else ""
        ip_info = f", IP: {ip_address}" if ip_address else ""
        self.logger.info(f"API Request - {method} {endpoint}{table_info}{ip_info}")

    def log_response(self, endpoint, status_code, duration=None):
        duration_info = f", Duration: {duration:.3f}s" if duration is not None else ""
        self.logger.info(f"API Response - {endpoint}, Status: {status_code}{duration_info}")

    def log_error(self, endpoint, error_message, status_code=500):
        self.logger.error(f"API Error - {endpoint}, Status: {status_code}, Error: {error_message}")


# Global logger instances
storage_logger = StorageLogger()
recognition_logger = RecognitionLogger()
api_logger = APILogger()


def get_client_ip(request):
    """Resolve the client IP address of a Flask request"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr
