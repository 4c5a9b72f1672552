# alquileres/routes/__init__.py
from flask import request, abort

from ..models import db, Grupo


def verificar_grupo():
    """Corta con 404 cualquier petición a un grupo inexistente."""
    grupo_id = (request.view_args or {}).get('grupo_id')
    if grupo_id is not None and db.session.get(Grupo, grupo_id) is None:
        abort(404, description='Grupo no encontrado')


def json_body():
    return request.get_json(silent=True) or {}
