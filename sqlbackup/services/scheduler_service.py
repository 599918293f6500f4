"""
Servicio de programación de ejecuciones de backup
"""
import schedule
import time
import signal
import sys
from typing import Callable, List, Optional
from ..logger import LoggerService
from ..models import RunReport


class SchedulerService:
    """Servicio para programar ejecuciones diarias del backup"""

    def __init__(self, job: Callable[[], RunReport], times: List[str],
                 scheduler: Optional[schedule.Scheduler] = None):
        """
        Inicializa el servicio de programación

        Args:
            job: Ejecuta un backup completo y devuelve su RunReport
            times: Horas diarias de ejecución en formato HH:MM
            scheduler: Scheduler de la librería schedule (por defecto uno propio)
        """
        self.job = job
        self.times = list(times)
        self.scheduler = scheduler or schedule.Scheduler()
        self.logger = LoggerService.get_logger("SchedulerService")
        self.running = False

    def register(self):
        """Registra un trabajo diario por cada hora configurada"""
        for schedule_time in self.times:
            # schedule valida el formato y lanza ScheduleValueError si es inválido
            self.scheduler.every().day.at(schedule_time).do(self._run_job)

    def start(self, run_immediately: bool = False):
        """
        Inicia el programador de tareas

        Args:
            run_immediately: Si es True, ejecuta un backup inmediatamente al iniciar
        """
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.register()

        self.logger.info("=" * 70)
        self.logger.info("SERVICIO DE BACKUP AUTOMÁTICO INICIADO")
        self.logger.info("=" * 70)
        self.logger.info(f"Backups diarios programados: {len(self.times)}")
        for schedule_time in self.times:
            self.logger.info(f"  - A las {schedule_time}")
        self.logger.info(f"Próxima ejecución: {self.get_next_run()}")
        self.logger.info("Presiona Ctrl+C para detener el servicio")
        self.logger.info("=" * 70)

        if run_immediately:
            self.logger.info("Ejecutando backup inicial...")
            self._run_job()

        self.running = True
        try:
            while self.running:
                self.scheduler.run_pending()
                time.sleep(30)
        except KeyboardInterrupt:
            self._shutdown()

    def _run_job(self):
        """Ejecuta un backup; un fallo no detiene el servicio"""
        try:
            report = self.job()
            if report.succeeded:
                self.logger.info("Backup programado completado exitosamente")
            else:
                self.logger.warning(
                    f"Backup programado abortado en la etapa {report.failed_stage.value}. "
                    "Revisa el log de la ejecución."
                )
        except Exception as e:
            self.logger.error(f"Error crítico durante backup: {e}", exc_info=True)

    def _signal_handler(self, signum, frame):
        """
        Manejador de señales para shutdown graceful

        Args:
            signum: Número de señal
            frame: Frame actual
        """
        try:
            signal_name = signal.Signals(signum).name
        except ValueError:
            signal_name = str(signum)

        self.logger.info(f"Señal recibida: {signal_name}")
        self._shutdown()

    def _shutdown(self):
        """Detiene el servicio de forma ordenada"""
        self.logger.info("Deteniendo servicio de backup...")
        self.running = False
        self.scheduler.clear()
        self.logger.info("Servicio detenido correctamente")
        sys.exit(0)

    def get_next_run(self) -> str:
        """
        Obtiene la fecha de la próxima ejecución

        Returns:
            String con la fecha de la próxima ejecución
        """
        next_run = self.scheduler.next_run
        if next_run:
            return next_run.strftime('%Y-%m-%d %H:%M:%S')
        return "No hay ejecuciones programadas"
