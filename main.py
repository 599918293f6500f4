#!/usr/bin/env python3
"""
Backup automático de todas las bases de datos de una instancia SQL Server
Punto de entrada principal

Uso:
    python main.py                          # Backup con ./options.json
    python main.py options.json 7z.exe      # Configuración y 7-Zip explícitos
    python main.py --schedule 02:00         # Modo scheduler (diario)
    python main.py --stats                  # Estadísticas de backups
    python main.py --init                   # Crear configuración de ejemplo

Códigos de salida: 0 éxito, 1 ejecución abortada, 2 configuración inválida
"""
import re
import sys
import argparse
from pathlib import Path

from sqlbackup.config import Config
from sqlbackup.errors import ConfigurationError
from sqlbackup.logger import LoggerService
from sqlbackup.models import EXIT_CONFIG_ERROR, EXIT_SUCCESS, RunReport
from sqlbackup.repositories.config_repository import ConfigRepository
from sqlbackup.services.archive_service import SevenZipArchiver
from sqlbackup.services.cleanup_service import CleanupService
from sqlbackup.services.notification_service import SmtpMailer
from sqlbackup.services.pipeline_service import BackupPipeline
from sqlbackup.services.scheduler_service import SchedulerService
from sqlbackup.strategies.sqlserver_strategy import SQLServerBackupStrategy


def well_formed_path(value: str) -> Path:
    """
    Tipo de argparse: valida que el valor sea una ruta sintácticamente válida

    La existencia se comprueba antes de usarla, no aquí.
    """
    if not value or not value.strip() or '\x00' in value:
        raise argparse.ArgumentTypeError(f"Ruta inválida: {value!r}")
    return Path(value)


def daily_time(value: str) -> str:
    """Tipo de argparse: hora del día en formato HH:MM (00:00 a 23:59)"""
    if not re.fullmatch(r"([01]\d|2[0-3]):[0-5]\d", value):
        raise argparse.ArgumentTypeError(f"Hora inválida (se espera HH:MM): {value!r}")
    return value


def parse_arguments(argv=None):
    """
    Parsea argumentos de línea de comandos

    Returns:
        Namespace con los argumentos parseados
    """
    parser = argparse.ArgumentParser(
        description='Backup automático de las bases de datos de una instancia SQL Server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  python main.py                          # Ejecutar backup una vez
  python main.py D:\\conf\\options.json     # Usar otra configuración
  python main.py --schedule 02:00 --now   # Servicio diario, ejecutando ya
  python main.py --stats                  # Ver estadísticas de backups
  python main.py --init                   # Crear options.json de ejemplo
        """
    )

    parser.add_argument(
        'config',
        nargs='?',
        type=well_formed_path,
        default=Config.DEFAULT_CONFIG_FILE,
        help=f'Archivo de configuración (default: {Config.DEFAULT_CONFIG_FILE})'
    )

    parser.add_argument(
        'seven_zip',
        nargs='?',
        type=well_formed_path,
        default=Config.DEFAULT_SEVEN_ZIP_PATH,
        help=f'Ejecutable de 7-Zip (default: {Config.DEFAULT_SEVEN_ZIP_PATH})'
    )

    parser.add_argument(
        '--schedule',
        action='append',
        type=daily_time,
        metavar='HH:MM',
        help='Ejecutar como servicio a la hora indicada (repetible)'
    )

    parser.add_argument(
        '--now',
        action='store_true',
        help='Con --schedule, ejecutar backup inmediatamente al iniciar'
    )

    parser.add_argument(
        '--stats',
        action='store_true',
        help='Mostrar estadísticas de backups'
    )

    parser.add_argument(
        '--init',
        action='store_true',
        help='Crear archivo de configuración de ejemplo'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Mostrar también el log en consola'
    )

    return parser.parse_args(argv)


def build_pipeline(args) -> BackupPipeline:
    """Crea la ejecución con las implementaciones reales de cada servicio"""
    return BackupPipeline(
        config_repo=ConfigRepository(args.config),
        strategy=SQLServerBackupStrategy(),
        archiver=SevenZipArchiver(args.seven_zip),
        mailer=SmtpMailer(),
        cleanup_service=CleanupService()
    )


def run_once(args) -> RunReport:
    """
    Ejecuta un backup completo con su propio archivo de log

    Returns:
        RunReport de la ejecución
    """
    Config.ensure_directories()
    LoggerService.start_run(LoggerService.run_log_path(), echo=args.verbose)
    try:
        return build_pipeline(args).run()
    finally:
        LoggerService.shutdown()


def scheduled_job(args) -> RunReport:
    """Una ejecución programada; al terminar el log vuelve a la consola"""
    try:
        return run_once(args)
    finally:
        LoggerService.start_run(None)


def run_scheduled(args):
    """Ejecuta el backup diariamente a las horas indicadas"""
    LoggerService.start_run(None)
    scheduler = SchedulerService(lambda: scheduled_job(args), args.schedule)
    scheduler.start(run_immediately=args.now)


def initialize_config(args) -> int:
    """
    Crea el archivo de configuración de ejemplo si no existe

    Returns:
        Código de salida
    """
    LoggerService.start_run(None)
    logger = LoggerService.get_logger("Init")
    if not ConfigRepository(args.config).create_example_config():
        return EXIT_CONFIG_ERROR

    logger.info(f"Creado: {args.config}")
    logger.info("IMPORTANTE:")
    logger.info("1. Edita el archivo con el servidor, instancia y directorio de backups")
    logger.info("2. Define SMTP_PASSWORD en el entorno o en un archivo .env")
    logger.info("3. Ejecuta nuevamente este script")
    return EXIT_SUCCESS


def show_statistics(args) -> int:
    """
    Muestra estadísticas del directorio de backups

    Returns:
        Código de salida
    """
    LoggerService.start_run(None)
    logger = LoggerService.get_logger("Stats")
    try:
        options = ConfigRepository(args.config).load_options()
    except ConfigurationError as e:
        logger.error(f"Configuración inválida: {e}")
        return EXIT_CONFIG_ERROR

    stats = CleanupService().get_backup_stats(options.backup_directory_path)

    logger.info("=" * 70)
    logger.info("ESTADÍSTICAS DE BACKUPS")
    logger.info("=" * 70)
    logger.info(f"Directorio: {options.backup_directory_path}")
    logger.info(f"Archivos comprimidos: {stats['total_files']}")
    logger.info(f"Espacio utilizado: {stats['total_size_mb']:.2f} MB")
    if stats['oldest_backup']:
        logger.info(f"Backup más antiguo: {stats['oldest_backup']}")
    if stats['newest_backup']:
        logger.info(f"Backup más reciente: {stats['newest_backup']}")
    if stats['pending_backups']:
        logger.warning(f"Archivos .bak sin comprimir: {stats['pending_backups']}")
    logger.info(f"Retención configurada: {options.remove_backups_older_than_days} días")
    logger.info("=" * 70)
    return EXIT_SUCCESS


def main(argv=None) -> int:
    """Función principal"""
    args = parse_arguments(argv)

    if args.init:
        return initialize_config(args)

    if args.stats:
        return show_statistics(args)

    if args.schedule:
        run_scheduled(args)
        return EXIT_SUCCESS

    return run_once(args).exit_code


def run():
    """Entry point del script de consola"""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nPrograma interrumpido por el usuario")
        sys.exit(130)


if __name__ == "__main__":
    run()
