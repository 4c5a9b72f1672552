# test_registros_mensuales.py
"""Registros mensuales: calendario del contrato, generación idempotente, saldo arrastrado y servicios."""
from datetime import date
from decimal import Decimal

import pytest

from alquileres import db
from alquileres.errors import ValidationError, ConflictError
from alquileres.models import RegistroMensual, EstadoRegistro
from alquileres.services.contratos import (month_number_for_period, calendar_period_for_month,
                                           current_contract_month, get_expiring_contracts)
from alquileres.services.registros_mensuales import (get_or_create_monthly_records, get_monthly_record_by_id,
                                                     get_records_for_contract, recalculate_monthly_record)
from alquileres.services.servicios_mensuales import (add_service, update_service, remove_service, bulk_assign,
                                                     copy_config)
from alquileres.services import registros_mensuales
from alquileres.services.pagos import register_payment

FECHA = date(2024, 1, 5)


def _registro(grupo, mes, ano, fecha_calculo=FECHA):
    return get_or_create_monthly_records(grupo.id, mes, ano, fecha_calculo=fecha_calculo)['registros'][0]


def test_numero_de_mes_de_contrato(crear_contrato):
    contrato = crear_contrato(fecha_inicio=date(2024, 1, 15))
    assert month_number_for_period(contrato, 1, 2024) == 1
    assert month_number_for_period(contrato, 12, 2024) == 12
    assert month_number_for_period(contrato, 1, 2025) == 13
    assert month_number_for_period(contrato, 12, 2023) == 0
    assert calendar_period_for_month(contrato, 13) == (1, 2025)
    assert current_contract_month(contrato, date(2030, 1, 1)) == 12


def test_numero_de_mes_con_mes_inicio(crear_contrato):
    # Contrato cargado a mitad de camino: enero 2024 es su mes 5
    contrato = crear_contrato(fecha_inicio=date(2024, 1, 1), duracion_meses=24, mes_inicio=5)
    assert month_number_for_period(contrato, 1, 2024) == 5
    assert calendar_period_for_month(contrato, 1) == (9, 2023)
    assert contrato.fecha_fin == date(2025, 8, 31)


def test_generacion_idempotente(grupo, crear_contrato):
    crear_contrato()
    crear_contrato(renta='80000')

    primera = get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=FECHA)
    segunda = get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=FECHA)

    assert RegistroMensual.query.count() == 2
    assert primera['resumen'] == segunda['resumen']
    assert [(r['id'], r['total_adeudado'], r['estado']) for r in primera['registros']] == \
           [(r['id'], r['total_adeudado'], r['estado']) for r in segunda['registros']]
    assert primera['resumen']['pendientes'] == 2
    assert primera['resumen']['total_adeudado'] == Decimal('180000')


def test_sin_registro_fuera_de_vigencia(grupo, crear_contrato):
    crear_contrato(fecha_inicio=date(2024, 1, 1), duracion_meses=12)
    assert get_or_create_monthly_records(grupo.id, 12, 2023, fecha_calculo=FECHA)['registros'] == []
    assert get_or_create_monthly_records(grupo.id, 1, 2025, fecha_calculo=FECHA)['registros'] == []


def test_periodo_invalido(grupo):
    with pytest.raises(ValidationError):
        get_or_create_monthly_records(grupo.id, 13, 2024)


def test_registro_nuevo(grupo, crear_contrato):
    crear_contrato()
    registro = _registro(grupo, 1, 2024)
    assert registro['numero_mes'] == 1
    assert registro['monto_alquiler'] == Decimal('100000.00')
    assert registro['total_adeudado'] == Decimal('100000.00')
    assert registro['saldo'] == Decimal('-100000.00')
    assert registro['estado'] == EstadoRegistro.PENDING.value
    assert registro['punitorio_vivo'] == Decimal('0')


def test_saldo_a_favor_pasa_al_mes_siguiente(grupo, crear_contrato):
    crear_contrato()
    enero = _registro(grupo, 1, 2024)
    register_payment(grupo.id, enero['id'], {'fecha_pago': FECHA, 'monto': '120000',
                                             'metodo_pago': 'TRANSFERENCIA'})

    febrero = _registro(grupo, 2, 2024, fecha_calculo=date(2024, 2, 5))
    assert febrero['saldo_anterior'] == Decimal('20000.00')
    assert febrero['total_adeudado'] == Decimal('80000.00')


def test_saldo_anterior_se_refresca(grupo, crear_contrato):
    crear_contrato()
    enero = _registro(grupo, 1, 2024)
    febrero = _registro(grupo, 2, 2024)
    assert febrero['saldo_anterior'] == Decimal('0')

    register_payment(grupo.id, enero['id'], {'fecha_pago': FECHA, 'monto': '120000',
                                             'metodo_pago': 'TRANSFERENCIA'})

    febrero = _registro(grupo, 2, 2024, fecha_calculo=date(2024, 2, 5))
    assert febrero['saldo_anterior'] == Decimal('20000.00')
    assert febrero['total_adeudado'] == Decimal('80000.00')


def test_saldo_anterior_mayor_que_la_renta(grupo, crear_contrato):
    crear_contrato()
    enero = _registro(grupo, 1, 2024)
    febrero = _registro(grupo, 2, 2024)

    register_payment(grupo.id, enero['id'], {'fecha_pago': FECHA, 'monto': '250000',
                                             'metodo_pago': 'TRANSFERENCIA'})

    febrero = _registro(grupo, 2, 2024, fecha_calculo=date(2024, 2, 5))
    assert febrero['saldo_anterior'] == Decimal('150000.00')
    assert febrero['total_adeudado'] == Decimal('0')
    assert db.session.get(RegistroMensual, febrero['id']).total_adeudado == Decimal('0')
    assert recalculate_monthly_record(grupo.id, febrero['id'])['total_adeudado'] == Decimal('0')


def test_registros_creados_en_paralelo(grupo, crear_contrato, monkeypatch):
    crear_contrato()
    original = registros_mensuales._crear_registro
    llamadas = []

    def _crear_con_duplicado(session, contrato, *args):
        # En el primer intento otra petición ya insertó el mismo período
        if not llamadas:
            original(session, contrato, *args)
        llamadas.append(contrato.id)
        return original(session, contrato, *args)

    monkeypatch.setattr(registros_mensuales, '_crear_registro', _crear_con_duplicado)
    datos = get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=FECHA)

    assert len(llamadas) == 2
    assert len(datos['registros']) == 1
    assert RegistroMensual.query.count() == 1


def test_deuda_del_mes_anterior_no_se_arrastra(grupo, crear_contrato):
    crear_contrato()
    enero = _registro(grupo, 1, 2024)
    register_payment(grupo.id, enero['id'], {'fecha_pago': FECHA, 'monto': '30000',
                                             'metodo_pago': 'TRANSFERENCIA'})
    febrero = _registro(grupo, 2, 2024, fecha_calculo=date(2024, 2, 5))
    assert febrero['saldo_anterior'] == Decimal('0')
    assert febrero['total_adeudado'] == Decimal('100000.00')


def test_punitorio_en_vivo(grupo, crear_contrato):
    crear_contrato()
    # 10/02/2024 es sábado: la gracia pasa al lunes 12 y el conteo arranca el día 10
    febrero = _registro(grupo, 2, 2024, fecha_calculo=date(2024, 2, 20))
    assert febrero['punitorio_vivo'] == Decimal('6600.00')
    assert febrero['dias_punitorio_vivo'] == 11
    assert febrero['total_vivo'] == Decimal('106600.00')
    assert febrero['debe_proximo_mes'] == Decimal('106600.00')

    # No se persiste
    assert db.session.get(RegistroMensual, febrero['id']).monto_punitorios == Decimal('0')
    dentro_de_gracia = get_monthly_record_by_id(grupo.id, febrero['id'], fecha_calculo=date(2024, 2, 12))
    assert dentro_de_gracia['punitorio_vivo'] == Decimal('0')


def test_servicios_y_descuentos(grupo, crear_contrato, tipos_concepto):
    crear_contrato()
    registro = _registro(grupo, 1, 2024)

    add_service(grupo.id, registro['id'], tipos_concepto['ABL'].id, '5000')
    resultado = add_service(grupo.id, registro['id'], tipos_concepto['DESCUENTO'].id, '1000', 'Pronto pago')

    datos = resultado['registro_mensual']
    assert datos['total_servicios'] == Decimal('4000.00')
    assert datos['total_adeudado'] == Decimal('104000.00')

    abl = datos['servicios'][0]
    datos = update_service(grupo.id, abl['id'], '7000')['registro_mensual']
    assert datos['total_adeudado'] == Decimal('106000.00')

    datos = remove_service(grupo.id, abl['id'])['registro_mensual']
    assert datos['total_servicios'] == Decimal('-1000.00')
    assert datos['total_adeudado'] == Decimal('99000.00')


def test_servicio_duplicado_o_negativo(grupo, crear_contrato, tipos_concepto):
    crear_contrato()
    registro = _registro(grupo, 1, 2024)
    add_service(grupo.id, registro['id'], tipos_concepto['ABL'].id, '5000')
    with pytest.raises(ConflictError):
        add_service(grupo.id, registro['id'], tipos_concepto['ABL'].id, '6000')
    with pytest.raises(ValidationError):
        add_service(grupo.id, registro['id'], tipos_concepto['AGUA'].id, '-10')


def test_iva(grupo, crear_contrato):
    crear_contrato()
    registro = _registro(grupo, 1, 2024)
    db.session.get(RegistroMensual, registro['id']).incluye_iva = True
    db.session.commit()

    datos = recalculate_monthly_record(grupo.id, registro['id'])
    assert datos['total_adeudado'] == Decimal('121000.00')


def test_asignacion_masiva_y_copia(grupo, crear_contrato, tipos_concepto):
    contrato = crear_contrato(fecha_inicio=date(2024, 1, 1), duracion_meses=3)
    resultado = bulk_assign(grupo.id, contrato.id, tipos_concepto['AGUA'].id, '3000',
                            [{'mes': 1, 'ano': 2024}, {'mes': 2, 'ano': 2024}, {'mes': 5, 'ano': 2024}])
    assert len(resultado['asignados']) == 2
    assert resultado['omitidos'] == [{'mes': 5, 'ano': 2024}]

    add_service(grupo.id, _registro(grupo, 1, 2024)['id'], tipos_concepto['ABL'].id, '5000')
    resultado = copy_config(grupo.id, contrato.id, 1, 2024, [{'mes': 3, 'ano': 2024}])
    assert {s['tipo_concepto']['nombre'] for s in resultado['copiados']} == {'AGUA', 'ABL'}
    assert _registro(grupo, 3, 2024)['total_servicios'] == Decimal('8000.00')

    historial = get_records_for_contract(grupo.id, contrato.id)
    assert [(r['mes_periodo'], r['ano_periodo']) for r in historial] == [(3, 2024), (2, 2024), (1, 2024)]


def test_filtros(grupo, crear_contrato):
    crear_contrato(inquilinos=('Ana Gómez',))
    crear_contrato(inquilinos=('Carlos Ruiz',))
    registros = get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=FECHA)['registros']
    register_payment(grupo.id, registros[0]['id'], {'fecha_pago': FECHA, 'monto': '100000',
                                                    'metodo_pago': 'TRANSFERENCIA'})

    completos = get_or_create_monthly_records(grupo.id, 1, 2024, filtros={'estado': 'COMPLETE'},
                                              fecha_calculo=FECHA)
    assert [r['id'] for r in completos['registros']] == [registros[0]['id']]
    assert completos['resumen']['completos'] == 1

    ruiz = get_or_create_monthly_records(grupo.id, 1, 2024, filtros={'busqueda': 'ruiz'}, fecha_calculo=FECHA)
    assert [r['id'] for r in ruiz['registros']] == [registros[1]['id']]


def test_contratos_por_vencer(grupo, crear_contrato):
    contrato = crear_contrato(fecha_inicio=date(2024, 1, 1), duracion_meses=12)
    assert contrato.fecha_fin == date(2024, 12, 31)

    por_vencer = get_expiring_contracts(grupo.id, meses=2, hoy=date(2024, 11, 15))
    assert [c['id'] for c in por_vencer] == [contrato.id]
    assert por_vencer[0]['dias_restantes'] == 46
    assert por_vencer[0]['mes_vigente'] == 11
    assert por_vencer[0]['meses_restantes'] == 1

    assert get_expiring_contracts(grupo.id, meses=2, hoy=date(2024, 6, 1)) == []
