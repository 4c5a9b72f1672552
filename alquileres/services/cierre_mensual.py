# alquileres/services/cierre_mensual.py
"""Cierre de mes: los registros pendientes o parciales del período pasan a deuda."""
from datetime import date

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ..models import (db, Contrato, ContratoInquilino, RegistroMensual, EstadoRegistro, ServicioMensual,
                      TransaccionPago, MESES_STR)
from ..utils.montos import CERO, redondear_2
from ..utils.punitorios import parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo
from .deudas import calcular_imputacion, _crear_deuda
from .feriados import get_holidays_for_year
from .registros_mensuales import _validar_periodo

ESTADOS_A_CERRAR = (EstadoRegistro.PENDING, EstadoRegistro.PARTIAL)


def _registros_impagos(grupo_id, mes, ano):
    return db.session.execute(
        select(RegistroMensual)
        .where(RegistroMensual.grupo_id == grupo_id,
               RegistroMensual.mes_periodo == mes,
               RegistroMensual.ano_periodo == ano,
               RegistroMensual.estado.in_(ESTADOS_A_CERRAR))
        .options(selectinload(RegistroMensual.deuda),
                 selectinload(RegistroMensual.servicios).selectinload(ServicioMensual.tipo_concepto),
                 selectinload(RegistroMensual.transacciones).selectinload(TransaccionPago.conceptos),
                 selectinload(RegistroMensual.contrato).selectinload(Contrato.contrato_inquilinos)
                 .selectinload(ContratoInquilino.inquilino),
                 selectinload(RegistroMensual.contrato).selectinload(Contrato.propiedad))
        .order_by(RegistroMensual.contrato_id)
    ).scalars().all()


def preview_close_month(grupo_id, mes, ano):
    """Qué deudas generaría el cierre, sin escribir nada."""
    mes, ano = _validar_periodo(mes, ano)
    registros = _registros_impagos(grupo_id, mes, ano)
    a_cerrar = [r for r in registros if r.deuda is None]

    detalle = []
    for registro in a_cerrar:
        imputacion = calcular_imputacion(registro)
        contrato = registro.contrato
        detalle.append({
            'registro_mensual_id': registro.id,
            'contrato_id': contrato.id,
            'inquilino': contrato.nombre_inquilinos,
            'propiedad': contrato.propiedad.direccion if contrato.propiedad else None,
            'estado': registro.estado.value,
            'monto_pagado': registro.monto_pagado,
            'generara_deuda': imputacion.total_impago > 0,
            **imputacion.to_dict(),
        })

    con_deuda = [d for d in detalle if d['generara_deuda']]
    return {
        'periodo': f"{MESES_STR[mes]} {ano}",
        'registros': detalle,
        'resumen': {
            'total_impagos': len(registros),
            'ya_tienen_deuda': len(registros) - len(a_cerrar),
            'a_cerrar': len(a_cerrar),
            'generaran_deuda': len(con_deuda),
            'total_alquiler_impago': redondear_2(sum((d['alquiler_impago'] for d in con_deuda), CERO)),
            'total_punitorios_impagos': redondear_2(sum((d['punitorios_impagos'] for d in con_deuda), CERO)),
            'total_deuda': redondear_2(sum((d['total_impago'] for d in con_deuda), CERO)),
        },
    }


def close_month(grupo_id, mes, ano, fecha_calculo=None):
    """Crea la deuda de cada registro impago del período.

    Cada registro se cierra en su propia transacción: un error se informa en ``errores``
    y no frena al resto. Volver a cerrar el mismo mes no duplica deudas.
    """
    mes, ano = _validar_periodo(mes, ano)
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    registros = _registros_impagos(grupo_id, mes, ano)
    ya_tenian = sum(1 for r in registros if r.deuda is not None)
    ids = [r.id for r in registros if r.deuda is None]
    feriados = get_holidays_for_year(ano)

    creadas, sin_deuda, errores = [], 0, []
    for registro_id in ids:
        try:
            with unidad_de_trabajo() as session:
                registro = session.get(RegistroMensual, registro_id, with_for_update=True)
                if registro.deuda is not None:
                    continue
                deuda = _crear_deuda(session, registro, fecha_calculo, feriados=feriados)
                if deuda is None:
                    sin_deuda += 1
                else:
                    creadas.append(deuda.to_dict())
        except Exception as e:
            current_app.logger.error(f"Error cerrando registro {registro_id} ({mes:02d}/{ano}): {e}", exc_info=True)
            errores.append({'registro_mensual_id': registro_id, 'error': str(e)})

    current_app.logger.info(
        f"Cierre {mes:02d}/{ano} grupo {grupo_id}: {len(creadas)} deudas creadas, "
        f"{ya_tenian} ya existentes, {len(errores)} errores.")
    return {
        'periodo': f"{MESES_STR[mes]} {ano}",
        'deudas_creadas': len(creadas),
        'deudas': creadas,
        'errores': errores,
        'resumen': {
            'total_impagos': len(registros),
            'ya_tenian_deuda': ya_tenian,
            'sin_deuda': sin_deuda,
        },
    }
