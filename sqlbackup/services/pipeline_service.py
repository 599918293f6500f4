"""
Ejecución completa de un backup como secuencia explícita de etapas

LOAD_CONFIG -> PREFLIGHT -> ENUMERATE -> BACKUP_EACH -> ARCHIVE -> PRUNE -> DONE

Cualquier error después de cargar la configuración lleva a FAILED, se
registra y se notifica una sola vez. No hay reintentos.
"""
from pathlib import Path
from typing import Optional
from ..errors import ConfigurationError
from ..logger import LoggerService
from ..models import BackupOptions, RunReport, RunStage
from ..repositories.config_repository import ConfigRepository
from ..strategies.base_strategy import BackupStrategy
from .archive_service import Archiver
from .backup_service import BackupService
from .cleanup_service import CleanupService
from .notification_service import Mailer, NotificationService


class BackupPipeline:
    """Orquesta una ejecución de backup de principio a fin"""

    def __init__(self, config_repo: ConfigRepository, strategy: BackupStrategy,
                 archiver: Archiver, mailer: Mailer,
                 cleanup_service: Optional[CleanupService] = None):
        """
        Inicializa la ejecución

        Args:
            config_repo: Repositorio de configuración
            strategy: Mecanismo nativo de backup del motor
            archiver: Herramienta de compresión
            mailer: Transporte de correo para notificaciones
            cleanup_service: Servicio de retención (opcional)
        """
        self.config_repo = config_repo
        self.strategy = strategy
        self.archiver = archiver
        self.notification_service = NotificationService(mailer)
        self.cleanup_service = cleanup_service or CleanupService()
        self.logger = LoggerService.get_logger("BackupPipeline")

    def run(self) -> RunReport:
        """
        Ejecuta todas las etapas en orden

        Returns:
            RunReport con la etapa final y, si falló, la etapa y el error
        """
        report = RunReport()
        self.logger.info("=" * 70)
        self.logger.info("INICIANDO PROCESO DE BACKUP")
        self.logger.info("=" * 70)

        try:
            options = self.config_repo.load_options()
        except ConfigurationError as e:
            self._mark_failed(report, e)
            self._log_failure(report)
            self.logger.error("Configuración inválida: no es posible notificar por correo")
            return report

        backup_service = BackupService(self.strategy, options)
        try:
            self._advance(report, RunStage.PREFLIGHT)
            self._preflight(options)

            self._advance(report, RunStage.ENUMERATE)
            databases = backup_service.list_databases()

            self._advance(report, RunStage.BACKUP_EACH)
            report.results = backup_service.backup_databases(databases)

            self._advance(report, RunStage.ARCHIVE)
            report.archive_path = self.archiver.archive(
                options.backup_directory_path,
                options.server_name,
                sources=[Path(r.output_file) for r in report.results if r.output_file],
                timeout_seconds=options.command_timeout_seconds
            )

            self._advance(report, RunStage.PRUNE)
            report.deleted_count = self.cleanup_service.prune_older_than(
                options.backup_directory_path, options.remove_backups_older_than_days
            )

            self._advance(report, RunStage.DONE)
        except Exception as e:
            # El correo sale antes de cualquier escritura en el log
            report.results = list(backup_service.completed)
            self._mark_failed(report, e)
            notify_error = self._notify(options, report)
            self._log_failure(report)
            if notify_error is not None:
                self.logger.error(f"No se pudo enviar la notificación: {notify_error}")
            else:
                self.logger.info(f"Notificación enviada a {options.smtp.send_to}")

        self._print_summary(report)
        return report

    def _advance(self, report: RunReport, stage: RunStage):
        report.stage = stage
        self.logger.info(f"Etapa: {stage.value}")

    def _mark_failed(self, report: RunReport, error: Exception):
        report.failed_stage = report.stage
        report.error = error
        report.stage = RunStage.FAILED

    def _log_failure(self, report: RunReport):
        error = report.error
        self.logger.error(
            f"Fallo en la etapa {report.failed_stage.value}: {type(error).__name__}: {error}"
        )

    def _preflight(self, options: BackupOptions):
        """Verifica la herramienta de compresión y el directorio de destino"""
        self.archiver.verify()
        options.backup_directory_path.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Directorio de backups: {options.backup_directory_path}")

    def _notify(self, options: BackupOptions, report: RunReport) -> Optional[Exception]:
        """
        Un solo intento de notificación, sin escribir en el log

        Returns:
            El error del envío, o None si el correo salió
        """
        try:
            self.notification_service.notify_failure(options, report.error, report.failed_stage)
        except Exception as e:
            return e
        report.notification_sent = True
        return None

    def _print_summary(self, report: RunReport):
        self.logger.info("=" * 70)
        self.logger.info("RESUMEN DEL PROCESO DE BACKUP")
        self.logger.info("=" * 70)

        for result in report.results:
            self.logger.info(str(result))

        self.logger.info(f"Bases de datos respaldadas: {len(report.results)}")
        if report.archive_path:
            self.logger.info(f"Archivo comprimido: {report.archive_path}")
        self.logger.info(f"Archivos antiguos eliminados: {report.deleted_count}")

        if report.succeeded:
            self.logger.info("Backup completado exitosamente")
        else:
            self.logger.error(
                f"Backup abortado en la etapa {report.failed_stage.value}: {report.error}"
            )
            if report.failed_stage is not RunStage.LOAD_CONFIG:
                status = "enviada" if report.notification_sent else "NO enviada"
                self.logger.error(f"Notificación {status}")
        self.logger.info("=" * 70)
