import configparser
import os

from passlib.context import CryptContext

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

config = configparser.ConfigParser()
config.read(os.path.join(BASE_DIR, 'conf', 'application.conf'))


# ---------- VAR DECLARATIONS -----------
LOG_CONFIG_SECTION = "LOG"
SERVICE_SECTION = "SERVICE"
STORAGE_SECTION = "STORAGE"
SHARING_SECTION = "SHARING"
TUNNEL_SECTION = "TUNNEL"

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024


def _setting(section: str, key: str, env_key: str, fallback: str = "") -> str:
    """Environment variable first, then the conf file, then the fallback."""
    value = os.environ.get(env_key)
    if value:
        return value
    return config.get(section, key, fallback=fallback) or fallback


def _default_storage_path() -> str:
    return os.path.join(os.path.expanduser("~"), ".cloud-drive", "uploads")


# Constants
class Constants:
    pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# -----------LOGGING--------------
class Log:
    LOG_BASE_PATH = os.path.join(BASE_DIR, config.get(LOG_CONFIG_SECTION, 'base_path', fallback='logs/'))
    LOG_LEVEL = config.get(LOG_CONFIG_SECTION, 'level', fallback='INFO')
    FILE_BACKUP_COUNT = config.get(LOG_CONFIG_SECTION, 'file_backup_count', fallback='5')
    FILE_BACKUP_SIZE = config.get(LOG_CONFIG_SECTION, 'max_log_file_size', fallback='10485760')
    FILE_NAME = os.path.join(LOG_BASE_PATH, config.get(LOG_CONFIG_SECTION, 'file_name', fallback='cloud-drive.log'))
    LOG_HANDLERS = config.get(LOG_CONFIG_SECTION, 'handlers', fallback='console')


class Service:
    ENABLE_CORS = config.get(SERVICE_SECTION, "ENABLE_CORS", fallback="true")
    PORT = _setting(SERVICE_SECTION, "PORT", "CLOUD_PORT", "5000")
    HOST = _setting(SERVICE_SECTION, "HOST", "CLOUD_HOST", "0.0.0.0")


class Storage:
    PATH = os.path.abspath(_setting(STORAGE_SECTION, "PATH", "CLOUD_STORAGE_PATH", _default_storage_path()))
    DATA_DIR = os.path.abspath(_setting(STORAGE_SECTION, "DATA_DIR", "CLOUD_DATA_DIR", os.path.dirname(PATH)))
    QUOTA_BYTES = int(_setting(STORAGE_SECTION, "QUOTA_BYTES", "CLOUD_STORAGE_QUOTA_BYTES", str(10 * GIB)))
    MAX_UPLOAD_BYTES = int(_setting(STORAGE_SECTION, "MAX_UPLOAD_BYTES", "CLOUD_MAX_UPLOAD_BYTES", str(100 * MIB)))


class Sharing:
    SWEEP_INTERVAL_SECONDS = int(_setting(SHARING_SECTION, "SWEEP_INTERVAL_SECONDS", "CLOUD_SHARE_SWEEP_INTERVAL",
                                          "300"))


class Tunnel:
    AUTHTOKEN = _setting(TUNNEL_SECTION, "AUTHTOKEN", "NGROK_AUTHTOKEN") or None
