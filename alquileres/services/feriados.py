# alquileres/services/feriados.py
from datetime import date

from flask import current_app
from sqlalchemy import select

from ..models import db, Feriado
from ..errors import ValidationError, NotFoundError, ConflictError
from ..utils.punitorios import parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo

# Feriados nacionales de fecha fija (Argentina)
FERIADOS_FIJOS_AR = [
    (1, 1, 'Año Nuevo'),
    (2, 24, 'Carnaval'),
    (2, 25, 'Carnaval'),
    (3, 24, 'Día Nacional de la Memoria'),
    (4, 2, 'Día del Veterano y de los Caídos en Malvinas'),
    (5, 1, 'Día del Trabajador'),
    (5, 25, 'Día de la Revolución de Mayo'),
    (6, 17, 'Paso a la Inmortalidad del Gral. Güemes'),
    (6, 20, 'Paso a la Inmortalidad del Gral. Belgrano'),
    (7, 9, 'Día de la Independencia'),
    (8, 17, 'Paso a la Inmortalidad del Gral. San Martín'),
    (10, 12, 'Día del Respeto a la Diversidad Cultural'),
    (11, 20, 'Día de la Soberanía Nacional'),
    (12, 8, 'Inmaculada Concepción de María'),
    (12, 25, 'Navidad'),
]


def get_holidays_for_year(ano):
    """Fechas de feriado de un año como ``frozenset`` de ``date``."""
    fechas = db.session.execute(select(Feriado.fecha).where(Feriado.ano == int(ano))).scalars()
    return frozenset(fechas)


def list_holidays(ano):
    return Feriado.query.filter_by(ano=int(ano)).order_by(Feriado.fecha).all()


class ProveedorFeriados:
    """Cache de feriados por año para cálculos en lote (una consulta por año)."""

    def __init__(self):
        self._por_ano = {}

    def para_ano(self, ano):
        ano = int(ano)
        if ano not in self._por_ano:
            self._por_ano[ano] = get_holidays_for_year(ano)
        return self._por_ano[ano]

    def __call__(self, ano):
        return self.para_ano(ano)


def add_holiday(fecha, nombre):
    fecha = parse_fecha_local(fecha)
    if fecha is None or not nombre:
        raise ValidationError('Fecha y nombre del feriado son obligatorios')
    with unidad_de_trabajo() as session:
        if session.execute(select(Feriado.id).where(Feriado.fecha == fecha)).first():
            raise ConflictError(f"Ya existe un feriado el {fecha.strftime('%d/%m/%Y')}")
        feriado = Feriado(fecha=fecha, nombre=nombre, ano=fecha.year)
        session.add(feriado)
    current_app.logger.info(f"Feriado agregado: {fecha} ({nombre})")
    return feriado


def remove_holiday(feriado_id):
    with unidad_de_trabajo() as session:
        feriado = session.get(Feriado, feriado_id)
        if not feriado:
            raise NotFoundError('Feriado no encontrado')
        datos = feriado.to_dict()
        session.delete(feriado)
    current_app.logger.info(f"Feriado eliminado: {datos['fecha']} ({datos['nombre']})")
    return datos


def seed_holidays(ano):
    """Carga los feriados fijos del año; los que ya existen se dejan como están."""
    ano = int(ano)
    creados = []
    with unidad_de_trabajo() as session:
        existentes = set(session.execute(select(Feriado.fecha).where(Feriado.ano == ano)).scalars())
        for mes, dia, nombre in FERIADOS_FIJOS_AR:
            fecha = date(ano, mes, dia)
            if fecha in existentes:
                continue
            feriado = Feriado(fecha=fecha, nombre=nombre, ano=ano)
            session.add(feriado)
            creados.append(feriado)
    current_app.logger.info(f"Feriados {ano}: {len(creados)} nuevos cargados.")
    return creados
