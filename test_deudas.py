# test_deudas.py
"""Deudas: alta al cerrar el mes, punitorio propio, pagos, anulación LIFO y reconciliación."""
from datetime import date
from decimal import Decimal
import warnings

import pytest
from sqlalchemy.exc import SAWarning

from alquileres import db
from alquileres.errors import ConflictError, NotFoundError
from alquileres.models import Deuda, RegistroMensual, EstadoDeuda, EstadoRegistro
from alquileres.services.cierre_mensual import close_month
from alquileres.services.deudas import (calculate_debt_punitory, pay_debt, cancel_debt_payment, can_pay_current_month,
                                        create_debt_from_monthly_record, recalculate_debt_from_monthly_record,
                                        get_open_debts, get_debts, get_debt_by_id, get_debts_summary)
from alquileres.services.pagos import register_payment, delete_transaction
from alquileres.services.registros_mensuales import get_or_create_monthly_records, get_monthly_record_by_id

CIERRE = date(2024, 2, 1)


@pytest.fixture
def contrato(crear_contrato):
    return crear_contrato(renta='50000', fecha_inicio=date(2024, 1, 1))


def _registro_enero(grupo):
    return get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=date(2024, 1, 5))['registros'][0]


def _deuda_enero(grupo, pago_previo=None):
    registro = _registro_enero(grupo)
    if pago_previo:
        register_payment(grupo.id, registro['id'], {'fecha_pago': date(2024, 1, 5), 'monto': pago_previo,
                                                    'metodo_pago': 'TRANSFERENCIA'})
    close_month(grupo.id, 1, 2024, fecha_calculo=CIERRE)
    return Deuda.query.filter_by(registro_mensual_id=registro['id']).one()


def test_alta_de_deuda_al_cerrar(grupo, contrato):
    deuda = _deuda_enero(grupo)

    assert deuda.estado == EstadoDeuda.OPEN
    assert deuda.monto_alquiler_impago == Decimal('50000.00')
    # 50000 x 0,006 x 32 días (01/01 al 01/02)
    assert deuda.punitorios_acumulados == Decimal('9600.00')
    assert deuda.total_actual == Decimal('59600.00')
    assert deuda.fecha_inicio_punitorios == date(2024, 1, 1)
    assert deuda.etiqueta_periodo == 'Enero 2024'


def test_alta_con_pago_previo(grupo, contrato):
    deuda = _deuda_enero(grupo, pago_previo='20000')

    assert deuda.monto_alquiler_impago == Decimal('30000.00')
    assert deuda.pago_previo_registro == Decimal('20000.00')
    assert deuda.fecha_inicio_punitorios == date(2024, 1, 5)
    # 30000 x 0,006 x 28 días (05/01 al 01/02)
    assert deuda.punitorios_acumulados == Decimal('5040.00')


def test_punitorio_de_la_deuda(grupo, contrato):
    deuda = _deuda_enero(grupo)

    calculo = calculate_debt_punitory(deuda, date(2024, 2, 10))

    assert calculo.dias == 41
    assert calculo.monto == Decimal('12300.00')
    assert calculo.restante_alquiler == Decimal('50000.00')


def test_pago_total_de_deuda(grupo, contrato):
    deuda = _deuda_enero(grupo)

    resultado = pay_debt(grupo.id, deuda.id, '62300', date(2024, 2, 10))

    assert resultado['deuda']['estado'] == EstadoDeuda.PAID.value
    assert resultado['deuda']['fecha_cierre'] is not None
    assert [(c['tipo'], c['monto']) for c in resultado['transaccion']['conceptos']] == [
        ('ALQUILER_DEUDA', Decimal('50000.00')),
        ('PUNITORIOS', Decimal('12300.00')),
    ]
    registro = resultado['registro_mensual']
    assert registro['estado'] == EstadoRegistro.COMPLETE.value
    assert registro['fecha_pago_total'] == date(2024, 2, 10)
    assert can_pay_current_month(grupo.id, contrato.id, date(2024, 2, 10))['puede_pagar'] is True


def test_pago_de_deuda_con_sobrepago(grupo, contrato):
    deuda = _deuda_enero(grupo)
    resultado = pay_debt(grupo.id, deuda.id, '70000', date(2024, 2, 10))
    assert resultado['transaccion']['conceptos'][-1]['tipo'] == 'SOBREPAGO'
    assert resultado['transaccion']['conceptos'][-1]['monto'] == Decimal('7700.00')
    with pytest.raises(ConflictError):
        pay_debt(grupo.id, deuda.id, '100', date(2024, 2, 11))


def test_sobrepago_de_deuda_queda_a_favor(grupo, contrato):
    deuda = _deuda_enero(grupo)
    pay_debt(grupo.id, deuda.id, '70000', date(2024, 2, 10))

    enero = get_monthly_record_by_id(grupo.id, deuda.registro_mensual_id, fecha_calculo=date(2024, 2, 10))
    febrero = get_or_create_monthly_records(grupo.id, 2, 2024, fecha_calculo=date(2024, 2, 10))['registros'][0]

    # Solo los 12300 imputados a punitorios; los 7700 restantes son saldo a favor
    assert enero['punitorios_historicos'] == Decimal('12300.00')
    assert enero['saldo'] == Decimal('7700.00')
    assert enero['a_favor_proximo_mes'] == Decimal('7700.00')
    assert febrero['saldo_anterior'] == enero['a_favor_proximo_mes']


def test_pago_de_deuda_sin_advertencias_de_sesion(grupo, contrato):
    deuda = _deuda_enero(grupo)
    with warnings.catch_warnings():
        warnings.simplefilter('error', SAWarning)
        resultado = pay_debt(grupo.id, deuda.id, '20000', date(2024, 2, 10))
    assert resultado['transaccion']['pago_deuda_id'] == resultado['pago']['id']


def test_pagos_parciales_de_deuda(grupo, contrato):
    deuda = _deuda_enero(grupo)

    primero = pay_debt(grupo.id, deuda.id, '20000', date(2024, 2, 10))
    assert primero['deuda']['estado'] == EstadoDeuda.PARTIAL.value
    assert primero['deuda']['total_actual'] == Decimal('42300.00')
    assert primero['registro_mensual']['estado'] == EstadoRegistro.PARTIAL.value

    # 30000 x 0,006 x 6 días desde el último pago
    calculo = calculate_debt_punitory(db.session.get(Deuda, deuda.id), date(2024, 2, 15))
    assert calculo.monto == Decimal('1080.00')

    segundo = pay_debt(grupo.id, deuda.id, '31080', date(2024, 2, 15))
    assert segundo['deuda']['estado'] == EstadoDeuda.PAID.value
    assert segundo['registro_mensual']['estado'] == EstadoRegistro.COMPLETE.value


def test_anulacion_solo_del_ultimo_pago(grupo, contrato):
    deuda = _deuda_enero(grupo)
    primero = pay_debt(grupo.id, deuda.id, '20000', date(2024, 2, 10))['pago']
    segundo = pay_debt(grupo.id, deuda.id, '31080', date(2024, 2, 15))['pago']

    with pytest.raises(ConflictError):
        cancel_debt_payment(grupo.id, deuda.id, primero['id'], fecha_calculo=date(2024, 2, 20))
    assert db.session.get(Deuda, deuda.id).monto_pagado == Decimal('51080.00')

    resultado = cancel_debt_payment(grupo.id, deuda.id, segundo['id'], fecha_calculo=date(2024, 2, 20))
    datos = resultado['deuda']
    assert datos['estado'] == EstadoDeuda.PARTIAL.value
    assert datos['monto_pagado'] == Decimal('20000.00')
    assert datos['punitorios_acumulados'] == Decimal('12300.00')
    assert datos['fecha_ultimo_pago'] == date(2024, 2, 10)
    assert datos['fecha_cierre'] is None
    registro = db.session.get(RegistroMensual, deuda.registro_mensual_id)
    assert len(registro.transacciones) == 1
    assert registro.estado == EstadoRegistro.PARTIAL

    resultado = cancel_debt_payment(grupo.id, deuda.id, primero['id'], fecha_calculo=date(2024, 2, 20))
    assert resultado['deuda']['estado'] == EstadoDeuda.OPEN.value
    assert resultado['deuda']['punitorios_acumulados'] == Decimal('0')
    registro = db.session.get(RegistroMensual, deuda.registro_mensual_id)
    assert registro.transacciones == []
    assert registro.estado == EstadoRegistro.PENDING


def test_pago_inexistente(grupo, contrato):
    deuda = _deuda_enero(grupo)
    with pytest.raises(NotFoundError):
        cancel_debt_payment(grupo.id, deuda.id, 999)


def test_eliminar_transaccion_espejo_anula_el_pago(grupo, contrato):
    deuda = _deuda_enero(grupo)
    primero = pay_debt(grupo.id, deuda.id, '20000', date(2024, 2, 10))
    segundo = pay_debt(grupo.id, deuda.id, '10000', date(2024, 2, 15))

    with pytest.raises(ConflictError):
        delete_transaction(grupo.id, primero['transaccion']['id'])

    delete_transaction(grupo.id, segundo['transaccion']['id'])
    deuda = db.session.get(Deuda, deuda.id)
    assert [p.id for p in deuda.pagos] == [primero['pago']['id']]
    assert deuda.monto_pagado == Decimal('20000.00')


def test_eliminar_pago_previo_recalcula_la_deuda(grupo, contrato):
    deuda = _deuda_enero(grupo, pago_previo='20000')
    registro = db.session.get(RegistroMensual, deuda.registro_mensual_id)
    transaccion_id = registro.transacciones[0].id

    delete_transaction(grupo.id, transaccion_id)

    deuda = db.session.get(Deuda, deuda.id)
    assert deuda.monto_alquiler_impago == Decimal('50000.00')
    assert deuda.pago_previo_registro == Decimal('0')
    assert deuda.estado == EstadoDeuda.OPEN
    assert deuda.total_actual == Decimal('55040.00')


def test_recalcular_deuda_sin_cambios(grupo, contrato):
    deuda = _deuda_enero(grupo, pago_previo='20000')
    datos = recalculate_debt_from_monthly_record(grupo.id, deuda.id)
    assert datos['monto_alquiler_impago'] == Decimal('30000.00')
    assert datos['estado'] == EstadoDeuda.OPEN.value


def test_alta_manual_y_registro_saldado(grupo, contrato):
    registro = _registro_enero(grupo)
    register_payment(grupo.id, registro['id'], {'fecha_pago': date(2024, 1, 5), 'monto': '50000',
                                                'metodo_pago': 'TRANSFERENCIA'})
    assert create_debt_from_monthly_record(grupo.id, registro['id'], fecha_calculo=CIERRE) is None


def test_registro_con_deuda_muestra_totales_historicos(grupo, contrato):
    deuda = _deuda_enero(grupo)
    pay_debt(grupo.id, deuda.id, '62300', date(2024, 2, 10))

    datos = get_monthly_record_by_id(grupo.id, deuda.registro_mensual_id, fecha_calculo=date(2024, 3, 1))
    assert datos['deuda']['estado'] == EstadoDeuda.PAID.value
    assert datos['punitorios_historicos'] == Decimal('12300.00')
    assert datos['total_historico'] == Decimal('62300.00')
    assert datos['debe_proximo_mes'] == Decimal('0')


def test_listados_de_deudas(grupo, contrato, crear_contrato):
    otro = crear_contrato(renta='30000', fecha_inicio=date(2024, 1, 1))
    deuda = _deuda_enero(grupo)
    otra = Deuda.query.filter_by(contrato_id=otro.id).one()
    pay_debt(grupo.id, otra.id, '20000', date(2024, 2, 10))

    abiertas = get_open_debts(grupo.id, fecha_calculo=date(2024, 2, 10))
    assert {d['id'] for d in abiertas} == {deuda.id, otra.id}
    assert get_open_debts(grupo.id, contrato_id=contrato.id, fecha_calculo=date(2024, 2, 10))[0]['id'] == deuda.id

    vista = get_debt_by_id(grupo.id, deuda.id, fecha_calculo=date(2024, 2, 10))
    assert vista['punitorio_vivo'] == Decimal('12300.00')
    assert vista['total_vivo'] == Decimal('62300.00')

    assert [d['id'] for d in get_debts(grupo.id, {'estado': 'PARTIAL'}, fecha_calculo=date(2024, 2, 10))] == [otra.id]

    resumen = get_debts_summary(grupo.id, fecha_calculo=date(2024, 2, 10))
    assert resumen['deudas_abiertas'] == 2
    assert resumen['deudas_parciales'] == 1
    assert resumen['contratos_bloqueados'] == 2
    assert resumen['total_alquiler_impago'] == Decimal('60000')
