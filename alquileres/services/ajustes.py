# alquileres/services/ajustes.py
"""Ajustes de renta por índice (ICL, IPC, ...).

Los ajustes se aplican por adelantado: cuando se carga el porcentaje de un índice se
actualizan los contratos cuyo próximo ajuste es el mes de contrato siguiente al vigente.
El historial de rentas es la fuente de verdad de la renta de cada mes.
"""
from datetime import date

from flask import current_app
from sqlalchemy import select

from ..models import (db, Contrato, IndiceAjuste, HistorialActualizacionRenta, MotivoActualizacion,
                      MESES_STR)
from ..errors import ValidationError, NotFoundError
from ..utils.montos import a_decimal, redondear_2
from ..utils.punitorios import parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo
from .contratos import (current_contract_month, month_number_for_period, calendar_period_for_month,
                        is_contract_active_for_month, _query_contratos)


# --- Reglas de calendario ---

def calculate_next_adjustment_month(mes_inicio, mes_actual, frecuencia, duracion):
    """Próximo mes de contrato con ajuste, o ``None`` si no hay frecuencia o cae fuera del contrato."""
    if not frecuencia or frecuencia <= 0:
        return None
    if mes_actual < mes_inicio:
        proximo = mes_inicio
    else:
        periodos = (mes_actual - mes_inicio) // frecuencia
        proximo = mes_inicio + (periodos + 1) * frecuencia
    return proximo if proximo <= duracion else None


def is_adjustment_month(mes_inicio, mes_actual, frecuencia):
    if not frecuencia or frecuencia <= 0 or mes_actual < mes_inicio:
        return False
    return (mes_actual - mes_inicio) % frecuencia == 0


def rent_for_month(contrato, numero_mes, session=None):
    """Renta del mes de contrato según el historial (fila más reciente que ya rige)."""
    session = session or db.session
    fila = session.execute(
        select(HistorialActualizacionRenta)
        .where(HistorialActualizacionRenta.contrato_id == contrato.id,
               HistorialActualizacionRenta.efectivo_desde_mes <= numero_mes)
        .order_by(HistorialActualizacionRenta.efectivo_desde_mes.desc(),
                  HistorialActualizacionRenta.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    return fila.renta_nueva if fila else contrato.renta_base


def _obtener_indice(grupo_id, indice_id, session=None):
    session = session or db.session
    indice = session.get(IndiceAjuste, indice_id)
    if not indice or indice.grupo_id != grupo_id:
        raise NotFoundError('Índice de ajuste no encontrado')
    return indice


def _etiqueta_mes_contrato(contrato, numero_mes):
    mes, ano = calendar_period_for_month(contrato, numero_mes)
    return f"{MESES_STR[mes]} {ano}"


# --- Aplicación ---

def _aplicar_a_contrato(session, contrato, indice, porcentaje, hoy):
    mes_vigente = current_contract_month(contrato, hoy)
    efectivo = mes_vigente + 1
    renta_anterior = contrato.renta_base
    renta_nueva = redondear_2(renta_anterior * (1 + porcentaje / 100))

    session.add(HistorialActualizacionRenta(
        contrato_id=contrato.id,
        efectivo_desde_mes=efectivo,
        fecha_actualizacion=hoy,
        renta_anterior=renta_anterior,
        renta_nueva=renta_nueva,
        porcentaje=porcentaje,
        tipo_actualizacion=MotivoActualizacion.AJUSTE_AUTOMATICO,
        descripcion_adicional=f"Ajuste {indice.nombre} {porcentaje}%",
    ))
    contrato.renta_base = renta_nueva
    contrato.mes_actual = mes_vigente
    contrato.proximo_mes_ajuste = calculate_next_adjustment_month(
        contrato.mes_inicio, efectivo, indice.frecuencia_meses, contrato.duracion_meses)

    return {
        'contrato_id': contrato.id,
        'inquilino': contrato.nombre_inquilinos,
        'propiedad': contrato.propiedad.direccion if contrato.propiedad else None,
        'efectivo_desde_mes': efectivo,
        'periodo': _etiqueta_mes_contrato(contrato, efectivo),
        'renta_anterior': renta_anterior,
        'renta_nueva': renta_nueva,
        'proximo_mes_ajuste': contrato.proximo_mes_ajuste,
    }


def apply_adjustment(grupo_id, indice_id, porcentaje, hoy=None):
    """Aplica ``porcentaje`` a los contratos del índice que ajustan el mes que viene.

    Cada contrato va en su propia transacción; los que fallan se informan en ``errores``
    sin deshacer a los demás.
    """
    hoy = parse_fecha_local(hoy, default=date.today())
    try:
        porcentaje = a_decimal(porcentaje, None)
    except ValueError as e:
        raise ValidationError(str(e))
    if porcentaje is None:
        raise ValidationError('El porcentaje de ajuste es obligatorio')

    indice = _obtener_indice(grupo_id, indice_id)
    candidatos = Contrato.query.filter(
        Contrato.grupo_id == grupo_id,
        Contrato.activo.is_(True),
        Contrato.indice_ajuste_id == indice.id,
        Contrato.proximo_mes_ajuste.isnot(None),
    ).order_by(Contrato.id).all()
    contrato_ids = [c.id for c in candidatos
                    if c.proximo_mes_ajuste == current_contract_month(c, hoy) + 1]

    ajustados, errores = [], []
    for contrato_id in contrato_ids:
        try:
            with unidad_de_trabajo() as session:
                contrato = session.get(Contrato, contrato_id, with_for_update=True)
                ajustados.append(_aplicar_a_contrato(session, contrato, indice, porcentaje, hoy))
        except Exception as e:
            current_app.logger.error(f"Error ajustando contrato {contrato_id}: {e}", exc_info=True)
            errores.append({'contrato_id': contrato_id, 'error': str(e)})

    current_app.logger.info(
        f"Ajuste {indice.nombre} {porcentaje}%: {len(ajustados)} contratos actualizados, {len(errores)} con error.")
    return {'indice': indice.to_dict(), 'porcentaje': porcentaje, 'ajustados': ajustados, 'errores': errores}


def apply_all_next_month_adjustments(grupo_id, hoy=None):
    """Aplica el valor vigente de cada índice del grupo (los índices en cero se omiten)."""
    indices = IndiceAjuste.query.filter(IndiceAjuste.grupo_id == grupo_id).order_by(IndiceAjuste.id).all()
    resultados, errores = [], []
    for indice in indices:
        if not indice.valor_actual:
            continue
        resultado = apply_adjustment(grupo_id, indice.id, indice.valor_actual, hoy=hoy)
        resultados.append({
            'indice': resultado['indice'],
            'contratos_ajustados': len(resultado['ajustados']),
            'ajustados': resultado['ajustados'],
        })
        errores.extend(dict(e, indice_id=indice.id) for e in resultado['errores'])
    return {'resultados': resultados, 'errores': errores}


def undo_adjustment_for_month(grupo_id, indice_id, numero_mes):
    """Revierte el ajuste automático que rige desde ``numero_mes`` en los contratos del índice.

    Restaura la renta previa y vuelve a dejar ``numero_mes`` como próximo ajuste. Un
    contrato con actualizaciones posteriores no se toca.
    """
    numero_mes = int(numero_mes)
    indice = _obtener_indice(grupo_id, indice_id)
    filas = db.session.execute(
        select(HistorialActualizacionRenta.id, HistorialActualizacionRenta.contrato_id)
        .join(Contrato, Contrato.id == HistorialActualizacionRenta.contrato_id)
        .where(Contrato.grupo_id == grupo_id,
               Contrato.activo.is_(True),
               Contrato.indice_ajuste_id == indice.id,
               HistorialActualizacionRenta.efectivo_desde_mes == numero_mes,
               HistorialActualizacionRenta.tipo_actualizacion == MotivoActualizacion.AJUSTE_AUTOMATICO)
        .order_by(HistorialActualizacionRenta.id)
    ).all()

    revertidos, errores = [], []
    for historial_id, contrato_id in filas:
        try:
            with unidad_de_trabajo() as session:
                contrato = session.get(Contrato, contrato_id, with_for_update=True)
                fila = session.get(HistorialActualizacionRenta, historial_id)
                posteriores = contrato.historial_actualizaciones.filter(
                    HistorialActualizacionRenta.efectivo_desde_mes > numero_mes).count()
                if posteriores:
                    raise ValidationError('El contrato tiene actualizaciones posteriores')

                previa = contrato.historial_actualizaciones.filter(
                    HistorialActualizacionRenta.efectivo_desde_mes < numero_mes
                ).order_by(HistorialActualizacionRenta.efectivo_desde_mes.desc(),
                           HistorialActualizacionRenta.id.desc()).first()
                renta_restaurada = previa.renta_nueva if previa else (fila.renta_anterior or contrato.renta_base)

                renta_deshecha = contrato.renta_base
                contrato.renta_base = renta_restaurada
                contrato.proximo_mes_ajuste = numero_mes
                session.delete(fila)
                revertidos.append({
                    'contrato_id': contrato.id,
                    'inquilino': contrato.nombre_inquilinos,
                    'renta_deshecha': renta_deshecha,
                    'renta_restaurada': renta_restaurada,
                })
        except Exception as e:
            current_app.logger.error(f"Error revirtiendo ajuste del contrato {contrato_id}: {e}", exc_info=True)
            errores.append({'contrato_id': contrato_id, 'error': str(e)})

    current_app.logger.info(
        f"Ajuste {indice.nombre} mes {numero_mes} revertido en {len(revertidos)} contratos.")
    return {'revertidos': revertidos, 'errores': errores}


# --- Listados ---

def get_contracts_with_adjustment_next_month(grupo_id, hoy=None):
    hoy = parse_fecha_local(hoy, default=date.today())
    contratos = _query_contratos(grupo_id).filter(
        Contrato.activo.is_(True),
        Contrato.indice_ajuste_id.isnot(None),
        Contrato.proximo_mes_ajuste.isnot(None),
    ).order_by(Contrato.id).all()

    resultado = []
    for contrato in contratos:
        mes_vigente = current_contract_month(contrato, hoy)
        if contrato.proximo_mes_ajuste != mes_vigente + 1:
            continue
        datos = contrato.resumen()
        datos['mes_vigente'] = mes_vigente
        datos['periodo_ajuste'] = _etiqueta_mes_contrato(contrato, contrato.proximo_mes_ajuste)
        datos['renta_actual'] = contrato.renta_base
        resultado.append(datos)
    return resultado


def get_contracts_with_adjustment_in_calendar(grupo_id, mes, ano):
    """Contratos cuyo mes de contrato para ``mes``/``ano`` es un mes de ajuste.

    El primer mes del contrato no cuenta como ajuste (es la renta inicial).
    """
    contratos = _query_contratos(grupo_id).filter(
        Contrato.activo.is_(True),
        Contrato.indice_ajuste_id.isnot(None),
    ).order_by(Contrato.id).all()

    resultado = []
    for contrato in contratos:
        numero_mes = month_number_for_period(contrato, mes, ano)
        if not is_contract_active_for_month(contrato, numero_mes) or numero_mes <= contrato.mes_inicio:
            continue
        if not is_adjustment_month(contrato.mes_inicio, numero_mes, contrato.indice_ajuste.frecuencia_meses):
            continue

        aplicado = contrato.historial_actualizaciones.filter(
            HistorialActualizacionRenta.efectivo_desde_mes == numero_mes,
            HistorialActualizacionRenta.tipo_actualizacion != MotivoActualizacion.INICIAL,
        ).first()
        datos = contrato.resumen()
        datos['numero_mes'] = numero_mes
        datos['renta_previa'] = rent_for_month(contrato, numero_mes - 1)
        datos['aplicado'] = aplicado is not None
        datos['renta_ajustada'] = aplicado.renta_nueva if aplicado else None
        resultado.append(datos)
    return resultado
