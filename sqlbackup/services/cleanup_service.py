"""
Servicio para limpiar backups antiguos (Single Responsibility)
"""
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
from ..config import Config
from ..errors import PruneError
from ..logger import LoggerService


class CleanupService:
    """Servicio para limpiar backups antiguos"""

    def __init__(self):
        """Inicializa el servicio de limpieza"""
        self.logger = LoggerService.get_logger("CleanupService")

    def prune_older_than(self, backup_dir: Path, days: int, now: Optional[datetime] = None) -> int:
        """
        Elimina recursivamente todo archivo modificado antes de now - days

        Recorre el directorio completo, no solo los archivos .7z: cualquier
        archivo viejo bajo backup_dir se elimina. Los directorios se recorren
        pero no se eliminan.

        Args:
            backup_dir: Directorio de backups
            days: Días de retención (>= 0)
            now: Momento de referencia (por defecto, ahora)

        Returns:
            Cantidad de archivos eliminados

        Raises:
            PruneError: si un archivo no se puede examinar o eliminar
        """
        if days < 0:
            raise PruneError(f"Días de retención inválidos: {days}", item=str(backup_dir))

        if not backup_dir.exists():
            self.logger.warning(f"Directorio de backups no existe: {backup_dir}")
            return 0

        now = now or datetime.now()
        cutoff_date = now - timedelta(days=days)
        self.logger.info(
            f"Eliminando archivos anteriores a {cutoff_date.strftime(Config.TIMESTAMP_FORMAT)} "
            f"en {backup_dir}"
        )

        deleted_count = 0
        try:
            candidates = sorted(path for path in backup_dir.rglob('*') if path.is_file())
        except OSError as e:
            raise PruneError(f"Error al recorrer el directorio: {e}", item=str(backup_dir)) from e

        for backup_file in candidates:
            try:
                stat = backup_file.stat()
                file_mtime = datetime.fromtimestamp(stat.st_mtime)
                if file_mtime >= cutoff_date:
                    continue

                backup_file.unlink()
            except OSError as e:
                self.logger.error(f"Error al eliminar {backup_file}: {e}")
                raise PruneError(f"Error al eliminar: {e}", item=str(backup_file)) from e

            deleted_count += 1
            self.logger.info(
                f"Eliminado archivo antiguo: {backup_file} "
                f"({stat.st_size / (1024 * 1024):.2f} MB, {(now - file_mtime).days} días)"
            )

        if deleted_count > 0:
            self.logger.info(f"Limpieza completada: {deleted_count} archivo(s) eliminado(s)")
        else:
            self.logger.info("No hay archivos antiguos para eliminar")

        return deleted_count

    def get_backup_stats(self, backup_dir: Path) -> dict:
        """
        Obtiene estadísticas de los archivos comprimidos

        Args:
            backup_dir: Directorio de backups

        Returns:
            Diccionario con estadísticas
        """
        stats = {
            'total_files': 0,
            'total_size_mb': 0,
            'oldest_backup': None,
            'newest_backup': None,
            'pending_backups': 0
        }
        if not backup_dir.exists():
            return stats

        archives = list(backup_dir.glob(f'*{Config.ARCHIVE_EXTENSION}'))
        stats['pending_backups'] = len(list(backup_dir.glob(f'*{Config.BACKUP_EXTENSION}')))
        if not archives:
            return stats

        oldest = min(archives, key=lambda f: f.stat().st_mtime)
        newest = max(archives, key=lambda f: f.stat().st_mtime)

        stats['total_files'] = len(archives)
        stats['total_size_mb'] = sum(f.stat().st_size for f in archives) / (1024 * 1024)
        stats['oldest_backup'] = datetime.fromtimestamp(oldest.stat().st_mtime)
        stats['newest_backup'] = datetime.fromtimestamp(newest.stat().st_mtime)
        return stats
