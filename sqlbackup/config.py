"""
Configuración centralizada del sistema de backup
"""
import logging
import os
import shutil
import sys
from pathlib import Path
from dotenv import load_dotenv, find_dotenv

class Config:
    """Configuración centralizada del sistema"""

    ENV_FILE = find_dotenv(usecwd=True)

    # Cargar variables de entorno (credenciales referenciadas como ${VAR})
    load_dotenv(ENV_FILE)

    # BASE_DIR es la raíz donde está main.py
    BASE_DIR = Path(ENV_FILE).parent if ENV_FILE else Path(__file__).resolve().parents[1]

    LOG_DIR = Path(os.getenv("BACKUP_LOG_DIR")) if os.getenv("BACKUP_LOG_DIR") else (BASE_DIR / "Logs")
    DEFAULT_CONFIG_FILE = Path("options.json")

    if sys.platform.startswith("win"):
        DEFAULT_SEVEN_ZIP_PATH = Path(r"C:\Program Files\7-Zip\7z.exe")
    else:
        DEFAULT_SEVEN_ZIP_PATH = Path(shutil.which("7z") or "/usr/bin/7z")

    # Ordenable lexicográficamente = orden cronológico
    TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"

    LOG_LEVEL = logging.INFO
    LOG_FORMAT = '%(asctime)s %(message)s'

    ARCHIVE_EXTENSION = ".7z"
    BACKUP_EXTENSION = ".bak"

    # Instancias que se conectan solo con el nombre del servidor
    DEFAULT_INSTANCE_NAMES = ('DEFAULT', 'MSSQLSERVER')

    COMMAND_TIMEOUT_SECONDS = 3600  # BACKUP DATABASE y 7-Zip
    CONNECT_TIMEOUT_SECONDS = 30
    SMTP_TIMEOUT_SECONDS = 60

    DEFAULT_CONFIG = {
        "database_backup": {
            "servername": "SRV1",
            "instance": "DEFAULT",
            "backup_directory_path": "D:\\Backups",
            "remove_backups_older_than": 14
        },
        "email_credentials": {
            "username": "backup@example.com",
            "password": "${SMTP_PASSWORD}"
        },
        "smtp_settings": {
            "send_to": "dba@example.com",
            "server_address": "smtp.example.com",
            "port": 587
        }
    }

    @classmethod
    def ensure_directories(cls):
        """Crea los directorios necesarios si no existen"""
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)
