import logging
import os
import sys
from logging import StreamHandler
from logging.handlers import RotatingFileHandler
from app_constants.app_configurations import Log


def get_logger():
    """sets logger mechanism"""
    _logger = logging.getLogger("cloud-drive-service")
    _logger.setLevel(Log.LOG_LEVEL)

    if Log.LOG_LEVEL == 'DEBUG':
        _formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(module)s - '
                                       '%(lineno)d - %(message)s')
    else:
        _formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    if 'file' in Log.LOG_HANDLERS or 'rotating' in Log.LOG_HANDLERS:
        if not os.path.exists(Log.LOG_BASE_PATH):
            os.makedirs(Log.LOG_BASE_PATH)

    if 'file' in Log.LOG_HANDLERS:
        _file_handler = logging.FileHandler(Log.FILE_NAME)
        _file_handler.setFormatter(_formatter)
        _logger.addHandler(_file_handler)

    if 'rotating' in Log.LOG_HANDLERS:
        _rotating_file_handler = RotatingFileHandler(filename=Log.FILE_NAME,
                                                     maxBytes=int(Log.FILE_BACKUP_SIZE),
                                                     backupCount=int(Log.FILE_BACKUP_COUNT))
        _rotating_file_handler.setFormatter(_formatter)
        _logger.addHandler(_rotating_file_handler)

    if 'console' in Log.LOG_HANDLERS:
        _console_handler = StreamHandler(sys.stdout)
        _console_handler.setFormatter(_formatter)
        _logger.addHandler(_console_handler)

    return _logger


logger = get_logger()
