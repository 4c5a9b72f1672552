# alquileres/errors.py
from flask import jsonify, current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException


class ErrorNegocio(Exception):
    """Base de los errores de negocio; cada subclase fija su código HTTP."""
    status_code = 400
    codigo = None

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self):
        data = {'success': False, 'message': self.message}
        if self.codigo:
            data['code'] = self.codigo
        data.update(self.extra)
        return data


class ValidationError(ErrorNegocio):
    status_code = 400


class NotFoundError(ErrorNegocio):
    status_code = 404


class ConflictError(ErrorNegocio):
    status_code = 409


class BlockedError(ErrorNegocio):
    """Pago bloqueado por deudas abiertas; lleva la lista de deudas para mostrarlas."""
    status_code = 409
    codigo = 'DEUDA_BLOQUEANTE'

    def __init__(self, message, deudas):
        super().__init__(message, deudas=deudas)
        self.deudas = deudas


def register_error_handlers(app):
    @app.errorhandler(ErrorNegocio)
    def handle_error_negocio(error):
        current_app.logger.info(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        current_app.logger.warning(f"Violación de integridad: {error.orig}")
        return jsonify({'success': False, 'message': 'El registro ya existe'}), 409

    @app.errorhandler(StaleDataError)
    def handle_stale_data(error):
        current_app.logger.warning(f"Actualización concurrente detectada: {error}")
        return jsonify({'success': False, 'message': 'El registro fue modificado por otra operación. Reintente.'}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'success': False, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        current_app.logger.error(f"Error inesperado: {error}", exc_info=True)
        return jsonify({'success': False, 'message': 'Error inesperado en el servidor.'}), 500
