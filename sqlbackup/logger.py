"""
Servicio de logging siguiendo principio Single Responsibility

Cada ejecución escribe en su propio archivo, nombrado con la marca de tiempo
de inicio, o en la salida estándar si no hay archivo configurado.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional
from .config import Config


ROOT_LOGGER_NAME = "sqlbackup"


class RunFileHandler(logging.FileHandler):
    """FileHandler que propaga los errores de escritura al llamador"""

    def handleError(self, record):
        # El log es infraestructura: si no se puede escribir, la ejecución falla
        raise


class LoggerService:
    """Servicio centralizado de logging"""

    _loggers = {}
    _handlers = []
    log_file: Optional[Path] = None

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Obtiene o crea un logger con el nombre especificado

        Args:
            name: Nombre del componente

        Returns:
            Logger hijo del logger del paquete
        """
        if name in cls._loggers:
            return cls._loggers[name]

        logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
        cls._loggers[name] = logger
        return logger

    @staticmethod
    def run_log_path(started_at: Optional[datetime] = None, log_dir: Optional[Path] = None) -> Path:
        """Ruta del archivo de log de una ejecución: <LOG_DIR>/<timestamp>.log"""
        started_at = started_at or datetime.now()
        log_dir = log_dir or Config.LOG_DIR
        return log_dir / f"{started_at.strftime(Config.TIMESTAMP_FORMAT)}.log"

    @classmethod
    def start_run(cls, log_file: Optional[Path] = None, echo: bool = False) -> logging.Logger:
        """
        Configura los handlers de una nueva ejecución

        Args:
            log_file: Archivo de log de la ejecución; None escribe en stdout
            echo: Si es True, replica también el log en stdout

        Returns:
            Logger raíz del paquete
        """
        cls.shutdown()

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(Config.LOG_LEVEL)
        root.propagate = False

        formatter = logging.Formatter(Config.LOG_FORMAT, datefmt=Config.TIMESTAMP_FORMAT)

        handlers = []
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(RunFileHandler(log_file, mode='a', encoding='utf-8'))
        if log_file is None or echo:
            handlers.append(logging.StreamHandler(sys.stdout))

        for handler in handlers:
            handler.setLevel(Config.LOG_LEVEL)
            handler.setFormatter(formatter)
            root.addHandler(handler)

        cls._handlers = handlers
        cls.log_file = log_file
        return root

    @classmethod
    def shutdown(cls):
        """Cierra y desacopla los handlers de la ejecución actual"""
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in cls._handlers:
            handler.flush()
            handler.close()
            root.removeHandler(handler)
        cls._handlers = []
        cls.log_file = None
