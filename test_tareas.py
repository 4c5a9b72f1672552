# test_tareas.py
"""Tareas programadas: carga de feriados y alertas de contratos por vencer."""
from datetime import date

from alquileres.models import Feriado
from alquileres.tasks import asegurar_feriados, revisar_alertas_contratos


def test_asegurar_feriados(app):
    asegurar_feriados(app)
    asegurar_feriados(app)

    hoy = date.today()
    assert Feriado.query.filter_by(ano=hoy.year).count() == 15
    assert Feriado.query.filter_by(ano=hoy.year + 1).count() == 15


def test_alertas_de_vencimiento(app, crear_contrato):
    inicio_de_mes = date.today().replace(day=1)
    crear_contrato(fecha_inicio=inicio_de_mes, duracion_meses=1)
    crear_contrato(fecha_inicio=inicio_de_mes, duracion_meses=24)

    assert revisar_alertas_contratos(app) == 1
