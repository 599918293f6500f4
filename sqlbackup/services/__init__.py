"""
Servicios de la aplicación
"""
from .archive_service import Archiver, SevenZipArchiver
from .backup_service import BackupService
from .cleanup_service import CleanupService
from .notification_service import Mailer, NotificationService, SmtpMailer
from .pipeline_service import BackupPipeline
from .scheduler_service import SchedulerService

__all__ = [
    'Archiver',
    'BackupPipeline',
    'BackupService',
    'CleanupService',
    'Mailer',
    'NotificationService',
    'SchedulerService',
    'SevenZipArchiver',
    'SmtpMailer'
]
