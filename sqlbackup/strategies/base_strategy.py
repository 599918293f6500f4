"""
Estrategia base para backups (Strategy Pattern)
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List
from ..errors import BackupError, BackupRunError
from ..logger import LoggerService
from ..models import BackupOptions, BackupResult, DatabaseDescriptor
import time


class BackupStrategy(ABC):
    """Interfaz abstracta hacia el mecanismo nativo de backup del motor"""

    def __init__(self):
        """Inicializa la estrategia"""
        self.logger = LoggerService.get_logger(self.__class__.__name__)

    @abstractmethod
    def list_databases(self, options: BackupOptions) -> List[DatabaseDescriptor]:
        """
        Enumera las bases de datos del servidor/instancia

        Args:
            options: Configuración de la ejecución

        Returns:
            Bases de datos en el orden en que las enumera el motor

        Raises:
            DatabaseConnectionError: si el servidor no es accesible
        """
        pass

    @abstractmethod
    def backup(self, options: BackupOptions, database: DatabaseDescriptor, output_file: Path) -> None:
        """
        Ejecuta el backup nativo de una base de datos hacia output_file

        Raises:
            BackupError: si el motor rechaza el backup
        """
        pass

    def execute_backup(self, options: BackupOptions, database: DatabaseDescriptor,
                       output_file: Path) -> BackupResult:
        """
        Template method para ejecutar backup con medición de tiempo

        A diferencia de un resultado fallido silencioso, cualquier error se
        registra y se propaga: un backup incompleto aborta la ejecución.

        Args:
            options: Configuración de la ejecución
            database: Base de datos a respaldar
            output_file: Archivo de salida para el backup

        Returns:
            Resultado del backup exitoso
        """
        self.logger.info(f"Iniciando backup de {database.name} -> {output_file}")
        start_time = time.time()

        try:
            self.backup(options, database, output_file)
        except BackupRunError as e:
            self.logger.error(f"Backup fallido de {database.name}: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Error al ejecutar backup de {database.name}: {e}")
            raise BackupError(str(e), item=database.name) from e

        duration = time.time() - start_time
        self.logger.info(f"Backup exitoso: {output_file.name} ({duration:.2f}s)")
        return BackupResult(
            database_name=database.name,
            success=True,
            output_file=str(output_file),
            duration_seconds=duration
        )
