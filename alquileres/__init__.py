# alquileres/__init__.py
import os
import logging # Para logging a archivo
from logging.handlers import RotatingFileHandler # Para logging a archivo
from datetime import date, datetime
from decimal import Decimal
import atexit  # Para cerrar el scheduler limpiamente

from flask import Flask
from flask.json.provider import DefaultJSONProvider
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler

# --- Instancias de Extensiones Globales ---
db = SQLAlchemy()
migrate = Migrate()

# --- Constantes para los nombres de meses ---
MESES_STR = ["", "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
             "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre"]


def _env_flag(nombre, default):
    valor = os.environ.get(nombre)
    if valor is None:
        return default
    return valor.lower() in ('1', 'true', 'si', 'yes')


class AlquileresJSONProvider(DefaultJSONProvider):
    """Importes como número y fechas en ISO (el provider por defecto usa formato HTTP)."""

    @staticmethod
    def default(o):
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, date):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


# --- Factory de la Aplicación ---
def create_app(config_overrides=None):
    """Crea y configura la instancia de la aplicación Flask."""
    app = Flask(__name__, instance_relative_config=True)
    app.json_provider_class = AlquileresJSONProvider
    app.json = AlquileresJSONProvider(app)

    # --- Configuración Principal de la Aplicación ---
    app.config['SECRET_KEY'] = os.environ.get('FLASK_SECRET_KEY', 'una-clave-secreta-muy-fuerte-y-diferente-para-produccion')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['WTF_CSRF_ENABLED'] = False # API JSON, sin formularios HTML
    app.config['MESES_STR'] = MESES_STR  # Añadir constante de meses para las tareas
    app.config['ALERTA_MESES_VENCIMIENTO'] = int(os.environ.get('ALERTA_MESES_VENCIMIENTO', 2))

    # --- Crear Carpeta de Instancia si no existe ---
    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError as e:
        app.logger.error(f"ERROR: No se pudo crear la carpeta de instancia en '{app.instance_path}': {e}")

    db_path = os.path.join(app.instance_path, 'alquileres.db')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', f"sqlite:///{db_path}")

    if config_overrides:
        app.config.update(config_overrides)

    app.config.setdefault(
        'SCHEDULER_ENABLED',
        _env_flag('SCHEDULER_ENABLED', not (app.debug or app.testing))
    )

    # --- Inicializar Extensiones ---
    db.init_app(app)
    migrate.init_app(app, db)

    # --- Configurar Logging a Archivo ---
    if not app.debug and not app.testing:
        log_dir = os.path.join(app.instance_path, 'logs') # Logs dentro de la carpeta de instancia
        try:
            os.makedirs(log_dir, exist_ok=True)
            log_file = os.path.join(log_dir, 'alquileres.log')
            file_handler = RotatingFileHandler(log_file, maxBytes=102400, backupCount=5) # 100KB por log, 5 backups
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            app.logger.setLevel(logging.INFO)
            app.logger.info('Alquileres iniciado (logging configurado)')
        except OSError as e_log:
            app.logger.error(f"ERROR configurando logging a archivo: {e_log}")

    # --- Manejo de Errores (respuestas JSON) ---
    from .errors import register_error_handlers
    register_error_handlers(app)

    # --- Registrar Blueprints ---
    from .routes.registros import registros_bp
    from .routes.deudas import deudas_bp
    from .routes.ajustes import ajustes_bp

    app.register_blueprint(registros_bp, url_prefix='/api/grupos/<int:grupo_id>')
    app.register_blueprint(deudas_bp, url_prefix='/api/grupos/<int:grupo_id>')
    app.register_blueprint(ajustes_bp, url_prefix='/api/grupos/<int:grupo_id>')

    # --- Inicializar APScheduler ---
    # Solo en el proceso principal (no en el hijo del reloader).
    if app.config['SCHEDULER_ENABLED'] and (not app.debug or os.environ.get('WERKZEUG_RUN_MAIN') == 'true'):
        scheduler = BackgroundScheduler(daemon=True)

        from .tasks import asegurar_feriados, revisar_alertas_contratos

        scheduler.add_job(
            func=asegurar_feriados,
            args=[app],
            trigger="cron",
            hour=1,
            minute=30,
            id='asegurar_feriados'
        )
        scheduler.add_job(
            func=revisar_alertas_contratos,
            args=[app],
            trigger="cron",
            hour=2,
            minute=0,
            id='revisar_alertas_contratos'
        )

        scheduler.start()
        app.logger.info("APScheduler iniciado y tareas programadas.")

        atexit.register(lambda: scheduler.shutdown())

    return app
