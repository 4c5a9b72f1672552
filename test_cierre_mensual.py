# test_cierre_mensual.py
"""Cierre de mes: vista previa, alta de deudas, idempotencia y aislamiento de errores."""
from datetime import date
from decimal import Decimal

import pytest

from alquileres.errors import ValidationError
from alquileres.models import Deuda
from alquileres.services import cierre_mensual
from alquileres.services.cierre_mensual import preview_close_month, close_month
from alquileres.services.pagos import register_payment
from alquileres.services.registros_mensuales import get_or_create_monthly_records

CIERRE = date(2024, 2, 1)


@pytest.fixture
def registros_enero(grupo, crear_contrato):
    """Tres contratos en enero: uno impago, uno con pago parcial y uno saldado."""
    for renta in ('50000', '40000', '30000'):
        crear_contrato(renta=renta, fecha_inicio=date(2024, 1, 1))
    registros = get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=date(2024, 1, 5))['registros']
    register_payment(grupo.id, registros[1]['id'], {'fecha_pago': date(2024, 1, 5), 'monto': '10000',
                                                    'metodo_pago': 'TRANSFERENCIA'})
    register_payment(grupo.id, registros[2]['id'], {'fecha_pago': date(2024, 1, 5), 'monto': '30000',
                                                    'metodo_pago': 'TRANSFERENCIA'})
    return registros


def test_vista_previa_no_escribe(grupo, registros_enero):
    preview = preview_close_month(grupo.id, 1, 2024)

    assert preview['periodo'] == 'Enero 2024'
    resumen = preview['resumen']
    assert resumen['total_impagos'] == 2
    assert resumen['a_cerrar'] == 2
    assert resumen['generaran_deuda'] == 2
    assert resumen['total_alquiler_impago'] == Decimal('80000.00')
    detalle = {d['registro_mensual_id']: d for d in preview['registros']}
    assert detalle[registros_enero[1]['id']]['alquiler_cubierto'] == Decimal('10000.00')
    assert Deuda.query.count() == 0


def test_cierre_crea_deudas_de_los_impagos(grupo, registros_enero):
    resultado = close_month(grupo.id, 1, 2024, fecha_calculo=CIERRE)

    assert resultado['deudas_creadas'] == 2
    assert resultado['errores'] == []
    assert resultado['resumen']['total_impagos'] == 2
    assert {d['registro_mensual_id'] for d in resultado['deudas']} == {
        registros_enero[0]['id'], registros_enero[1]['id']}
    assert sorted(d['monto_alquiler_impago'] for d in resultado['deudas']) == [
        Decimal('30000.00'), Decimal('50000.00')]


def test_cierre_idempotente(grupo, registros_enero):
    close_month(grupo.id, 1, 2024, fecha_calculo=CIERRE)
    segundo = close_month(grupo.id, 1, 2024, fecha_calculo=CIERRE)

    assert segundo['deudas_creadas'] == 0
    assert segundo['resumen']['ya_tenian_deuda'] == 2
    assert Deuda.query.count() == 2
    assert preview_close_month(grupo.id, 1, 2024)['resumen']['ya_tienen_deuda'] == 2


def test_error_en_un_registro_no_frena_el_cierre(grupo, registros_enero, monkeypatch):
    original = cierre_mensual._crear_deuda
    fallido = registros_enero[0]['id']

    def _crear_deuda(session, registro, fecha_calculo, feriados=None):
        if registro.id == fallido:
            raise RuntimeError('falla simulada')
        return original(session, registro, fecha_calculo, feriados=feriados)

    monkeypatch.setattr(cierre_mensual, '_crear_deuda', _crear_deuda)
    resultado = close_month(grupo.id, 1, 2024, fecha_calculo=CIERRE)

    assert resultado['deudas_creadas'] == 1
    assert resultado['errores'] == [{'registro_mensual_id': fallido, 'error': 'falla simulada'}]
    assert Deuda.query.count() == 1


def test_periodo_invalido(grupo):
    with pytest.raises(ValidationError):
        close_month(grupo.id, 0, 2024)
