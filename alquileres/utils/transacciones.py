# alquileres/utils/transacciones.py
from contextlib import contextmanager

from .. import db


@contextmanager
def unidad_de_trabajo():
    """Una operación lógica = una transacción: commit al salir, rollback ante cualquier error.

    Las funciones internas de los servicios reciben la sesión y nunca hacen commit.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
