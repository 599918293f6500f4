"""
Servicio que respalda todas las bases de datos de una instancia
"""
from pathlib import Path
from typing import List
from ..config import Config
from ..logger import LoggerService
from ..models import BackupOptions, BackupResult, DatabaseDescriptor
from ..strategies.base_strategy import BackupStrategy


class BackupService:
    """Servicio que orquesta los backups de una instancia, uno a la vez"""

    def __init__(self, strategy: BackupStrategy, options: BackupOptions):
        """
        Inicializa el servicio de backup

        Args:
            strategy: Mecanismo nativo de backup del motor
            options: Configuración de la ejecución
        """
        self.strategy = strategy
        self.options = options
        self.logger = LoggerService.get_logger("BackupService")
        self.completed: List[BackupResult] = []

    @property
    def backup_dir(self) -> Path:
        return self.options.backup_directory_path

    def output_file_for(self, database: DatabaseDescriptor) -> Path:
        """Archivo de backup de una base de datos: <directorio>/<nombre>.bak"""
        return self.backup_dir / f"{database.name}{Config.BACKUP_EXTENSION}"

    def list_databases(self) -> List[DatabaseDescriptor]:
        """
        Enumera las bases de datos del servidor configurado

        Returns:
            Bases de datos en orden de enumeración
        """
        self.logger.info(
            f"Enumerando bases de datos de {self.options.server_name}/{self.options.instance_name}"
        )
        databases = self.strategy.list_databases(self.options)
        for database in databases:
            self.logger.info(f"  - {database.name}")
        return databases

    def backup_databases(self, databases: List[DatabaseDescriptor]) -> List[BackupResult]:
        """
        Respalda cada base de datos en orden; el primer error aborta el resto

        Los archivos ya generados quedan en disco, pero no se continúa:
        un conjunto parcial nunca debe llegar a comprimirse.

        Args:
            databases: Bases de datos a respaldar

        Returns:
            Lista de resultados, todos exitosos
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        self.completed = []
        total = len(databases)
        for index, database in enumerate(databases, 1):
            self.logger.info(f"[{index}/{total}] Backup de {database.name}")
            result = self.strategy.execute_backup(
                self.options, database, self.output_file_for(database)
            )
            self.completed.append(result)

        self.logger.info(f"Backups completados: {len(self.completed)} de {total}")
        return list(self.completed)

    def run_backups(self) -> List[BackupResult]:
        """
        Enumera y respalda todas las bases de datos de la instancia

        Returns:
            Resultados (nombre, archivo, duración) en orden de enumeración
        """
        return self.backup_databases(self.list_databases())
