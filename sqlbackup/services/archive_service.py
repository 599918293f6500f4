"""
Compresión de los backups de una ejecución en un único archivo 7z
"""
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
import shutil
import subprocess
from typing import List, Optional
from ..config import Config
from ..errors import ArchiveToolError
from ..logger import LoggerService


class Archiver(ABC):
    """Interfaz de la herramienta de compresión"""

    @abstractmethod
    def verify(self) -> None:
        """Comprueba que la herramienta está disponible (ArchiveToolError si no)"""
        pass

    @abstractmethod
    def archive(self, source_dir: Path, server_name: str, sources: Optional[List[Path]] = None,
                timeout_seconds: Optional[int] = None) -> Optional[Path]:
        """
        Comprime los .bak de la ejecución en un archivo fechado y los elimina

        Sin sources se toman todos los .bak de source_dir.

        Returns:
            Ruta del archivo creado, o None si no había nada que comprimir
        """
        pass

    @staticmethod
    def archive_name(server_name: str, when: Optional[datetime] = None) -> str:
        """Nombre del archivo: <servidor>_<timestamp>.7z"""
        when = when or datetime.now()
        return f"{server_name}_{when.strftime(Config.TIMESTAMP_FORMAT)}{Config.ARCHIVE_EXTENSION}"


class SevenZipArchiver(Archiver):
    """Archiver basado en el ejecutable de 7-Zip"""

    def __init__(self, tool_path: Path = Config.DEFAULT_SEVEN_ZIP_PATH,
                 timeout_seconds: int = Config.COMMAND_TIMEOUT_SECONDS):
        self.tool_path = Path(tool_path)
        self.timeout_seconds = timeout_seconds
        self.logger = LoggerService.get_logger("ArchiveService")

    def _resolve_tool(self) -> Optional[str]:
        if self.tool_path.is_file():
            return str(self.tool_path)
        return shutil.which(str(self.tool_path))

    def verify(self) -> None:
        if not self._resolve_tool():
            raise ArchiveToolError("La herramienta de compresión no existe", item=str(self.tool_path))
        self.logger.info(f"Herramienta de compresión: {self.tool_path}")

    def build_command(self, tool: str, archive_path: Path, sources: List[Path]) -> list:
        return [
            tool,
            'a',            # Agregar al archivo
            '-t7z',         # Formato 7z
            '-mx=9',        # Compresión máxima
            '-sdel',        # Eliminar los archivos fuente al terminar
            str(archive_path),
        ] + [str(source) for source in sources]

    def archive(self, source_dir: Path, server_name: str, sources: Optional[List[Path]] = None,
                timeout_seconds: Optional[int] = None) -> Optional[Path]:
        """
        Comprime los .bak de la ejecución en <servidor>_<timestamp>.7z

        Args:
            source_dir: Directorio de backups (destino del archivo)
            server_name: Nombre del servidor (prefijo del archivo)
            sources: Archivos a comprimir; por defecto todos los .bak de source_dir
            timeout_seconds: Límite de la herramienta; por defecto el del constructor

        Returns:
            Ruta del archivo creado, o None si no había backups
        """
        tool = self._resolve_tool()
        if not tool:
            raise ArchiveToolError("La herramienta de compresión no existe", item=str(self.tool_path))

        if sources is None:
            sources = sorted(source_dir.glob(f"*{Config.BACKUP_EXTENSION}"))
        timeout_seconds = timeout_seconds or self.timeout_seconds
        if not sources:
            self.logger.warning(f"No hay archivos {Config.BACKUP_EXTENSION} para comprimir en {source_dir}")
            return None

        archive_path = source_dir / self.archive_name(server_name)
        self.logger.info(f"Comprimiendo {len(sources)} archivo(s) en {archive_path.name}")

        cmd = self.build_command(tool, archive_path, sources)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout_seconds
            )
        except subprocess.TimeoutExpired as e:
            raise ArchiveToolError(
                f"Timeout: la compresión tardó más de {timeout_seconds}s", item=str(archive_path)
            ) from e
        except OSError as e:
            raise ArchiveToolError(f"No se pudo ejecutar la herramienta: {e}", item=tool) from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise ArchiveToolError(
                f"La herramienta terminó con código {result.returncode}: {output}",
                item=str(archive_path)
            )

        size_mb = archive_path.stat().st_size / (1024 * 1024) if archive_path.exists() else 0
        self.logger.info(f"Archivo creado: {archive_path.name} ({size_mb:.2f} MB)")
        return archive_path
