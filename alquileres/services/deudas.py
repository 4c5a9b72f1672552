# alquileres/services/deudas.py
"""Deudas: lo que quedó impago de un registro al cerrar el mes.

Una deuda lleva su propio reloj de punitorios y sus propios pagos. Cada pago de deuda
genera además una transacción espejo en el registro para tener un historial único.
Solo se puede anular el último pago de una deuda.
"""
import dataclasses
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ..models import (db, Contrato, ContratoInquilino, Propiedad, RegistroMensual, Deuda, PagoDeuda,
                      TransaccionPago, ConceptoTransaccion, EstadoDeuda, EstadoRegistro, MetodoPago,
                      ESTADOS_DEUDA_ABIERTA, CONCEPTO_ALQUILER_DEUDA, CONCEPTO_PUNITORIOS,
                      CONCEPTO_SOBREPAGO)
from ..errors import ValidationError, NotFoundError, ConflictError
from ..utils.montos import CERO, TOLERANCIA_PAGO, redondear_2, redondear_peso, positivo
from ..utils.punitorios import calculate_punitory, parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo
from .feriados import ProveedorFeriados, get_holidays_for_year
from .imputacion import imputar_registro
from .registros_mensuales import (_recalcular_registro, marcar_estado, transacciones_ordenadas,
                                  ultima_transaccion)


# --- Punitorio de la deuda ---

@dataclass(frozen=True)
class EstadoCalculoDeuda:
    """Valores de una deuda que intervienen en el punitorio (permite simular cambios)."""
    mes_periodo: int
    ano_periodo: int
    monto_alquiler_impago: Decimal
    monto_pagado: Decimal
    punitorios_acumulados: Decimal
    fecha_inicio_punitorios: date
    fecha_ultimo_pago: Optional[date]


@dataclass(frozen=True)
class PunitorioDeuda:
    monto: Decimal # Punitorio impago a la fecha
    dias: int
    nuevo: Decimal # Devengado desde el último reloj
    restante_alquiler: Decimal
    desde: Optional[date] = None
    hasta: Optional[date] = None

    def to_dict(self):
        return dataclasses.asdict(self)


def _estado_calculo(deuda):
    return EstadoCalculoDeuda(
        mes_periodo=deuda.mes_periodo,
        ano_periodo=deuda.ano_periodo,
        monto_alquiler_impago=deuda.monto_alquiler_impago,
        monto_pagado=deuda.monto_pagado,
        punitorios_acumulados=deuda.punitorios_acumulados,
        fecha_inicio_punitorios=deuda.fecha_inicio_punitorios,
        fecha_ultimo_pago=deuda.fecha_ultimo_pago,
    )


def calculate_debt_punitory(deuda, fecha_calculo=None, contrato=None, feriados=None, **cambios):
    """Punitorio impago de una deuda a ``fecha_calculo``.

    Con alquiler pendiente, el punitorio corre sobre ese alquiler desde el último pago
    (o desde el inicio del reloj). Saldado el alquiler, corre sobre el punitorio
    acumulado y se descuenta lo pagado por encima del alquiler. ``cambios`` reemplaza
    valores de la deuda sin tocarla (monto_pagado, punitorios_acumulados, ...).
    """
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    contrato = contrato or deuda.contrato
    estado = dataclasses.replace(_estado_calculo(deuda), **cambios)
    if feriados is None:
        feriados = get_holidays_for_year(estado.ano_periodo)

    def _calcular(base, desde):
        return calculate_punitory(fecha_calculo, estado.mes_periodo, estado.ano_periodo, base,
                                  contrato.dia_inicio_punitorios, contrato.dia_gracia_punitorios,
                                  deuda.porcentaje_punitorios, feriados, desde)

    restante = positivo(estado.monto_alquiler_impago - estado.monto_pagado)

    if restante <= 0:
        desde = estado.fecha_ultimo_pago or estado.fecha_inicio_punitorios
        nuevo = _calcular(estado.punitorios_acumulados, desde)
        total = estado.punitorios_acumulados + nuevo.monto
        pagado_a_punitorios = positivo(estado.monto_pagado - estado.monto_alquiler_impago)
        impago = positivo(total - pagado_a_punitorios)
        if impago <= 0:
            return PunitorioDeuda(monto=CERO, dias=0, nuevo=CERO, restante_alquiler=CERO)
        return PunitorioDeuda(monto=redondear_2(impago), dias=nuevo.dias, nuevo=nuevo.monto,
                              restante_alquiler=CERO, desde=nuevo.desde, hasta=nuevo.hasta)

    if estado.fecha_ultimo_pago is not None:
        desde = estado.fecha_ultimo_pago
    elif estado.fecha_inicio_punitorios != date(estado.ano_periodo, estado.mes_periodo, 1):
        desde = estado.fecha_inicio_punitorios
    else:
        # Reloj desde el día 1: lo resuelve el calculador según el período
        desde = None
    resultado = _calcular(restante, desde)
    return PunitorioDeuda(monto=resultado.monto, dias=resultado.dias, nuevo=resultado.monto,
                          restante_alquiler=restante, desde=resultado.desde, hasta=resultado.hasta)


def _deuda_en_vivo(deuda, fecha_calculo, feriados_por_ano):
    datos = deuda.to_dict()
    datos['contrato'] = deuda.contrato.resumen()
    if deuda.estado == EstadoDeuda.PAID:
        datos.update({'punitorio_vivo': CERO, 'dias_punitorio': 0, 'restante_alquiler': CERO,
                      'total_vivo': CERO})
        return datos
    calculo = calculate_debt_punitory(deuda, fecha_calculo, contrato=deuda.contrato,
                                      feriados=feriados_por_ano(deuda.ano_periodo))
    datos.update({
        'punitorio_vivo': calculo.monto,
        'dias_punitorio': calculo.dias,
        'restante_alquiler': calculo.restante_alquiler,
        'total_vivo': redondear_2(calculo.restante_alquiler + calculo.monto),
        'punitorio_detalle': calculo.to_dict(),
    })
    return datos


# --- Alta de deuda ---

def calcular_imputacion(registro, monto_punitorios=None):
    """Qué cubrió lo ya pagado en un registro (servicios → IVA → alquiler → punitorios)."""
    return imputar_registro(registro, monto_punitorios=monto_punitorios)


def _crear_deuda(session, registro, fecha_calculo, feriados=None):
    """Crea la deuda del registro; devuelve la existente si ya hay una y ``None`` si no queda nada impago."""
    if registro.deuda is not None:
        return registro.deuda

    contrato = registro.contrato
    if feriados is None:
        feriados = get_holidays_for_year(registro.ano_periodo)
    ultima = ultima_transaccion(registro)
    fecha_ultima = ultima.fecha_pago if ultima else None

    punitorio = registro.monto_punitorios
    if registro.estado != EstadoRegistro.COMPLETE and not registro.punitorios_condonados:
        alquiler_impago = imputar_registro(registro, monto_punitorios=CERO).alquiler_impago
        punitorio = calculate_punitory(
            fecha_calculo, registro.mes_periodo, registro.ano_periodo, alquiler_impago,
            contrato.dia_inicio_punitorios, contrato.dia_gracia_punitorios,
            contrato.porcentaje_punitorios, feriados, fecha_ultima).monto

    imputacion = imputar_registro(registro, monto_punitorios=punitorio)
    if imputacion.alquiler_impago <= 0 and imputacion.punitorios_impagos <= 0:
        return None

    deuda = Deuda(
        grupo_id=registro.grupo_id,
        contrato_id=registro.contrato_id,
        registro=registro,
        etiqueta_periodo=registro.etiqueta_periodo,
        mes_periodo=registro.mes_periodo,
        ano_periodo=registro.ano_periodo,
        monto_original=redondear_2(imputacion.total_original),
        monto_alquiler_impago=redondear_2(imputacion.alquiler_impago),
        pago_previo_registro=registro.monto_pagado,
        punitorios_acumulados=redondear_2(imputacion.punitorios_impagos),
        total_actual=redondear_2(imputacion.total_impago),
        monto_pagado=CERO,
        porcentaje_punitorios=contrato.porcentaje_punitorios,
        fecha_inicio_punitorios=fecha_ultima or date(registro.ano_periodo, registro.mes_periodo, 1),
        estado=EstadoDeuda.OPEN,
    )
    session.add(deuda)
    session.flush()
    current_app.logger.info(
        f"Deuda {deuda.id} creada para registro {registro.id} ({deuda.etiqueta_periodo}): "
        f"alquiler impago {deuda.monto_alquiler_impago}, punitorios {deuda.punitorios_acumulados}")
    return deuda


def create_debt_from_monthly_record(grupo_id, registro_id, fecha_calculo=None):
    # Importación local para evitar ciclos
    from .registros_mensuales import obtener_registro

    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    with unidad_de_trabajo() as session:
        registro = obtener_registro(grupo_id, registro_id, session=session, bloquear=True)
        deuda = _crear_deuda(session, registro, fecha_calculo)
        datos = deuda.to_dict() if deuda else None
    return datos


# --- Bloqueo de pagos ---

def _deudas_abiertas(grupo_id, contrato_id=None):
    query = Deuda.query.filter(Deuda.grupo_id == grupo_id, Deuda.estado.in_(ESTADOS_DEUDA_ABIERTA))
    if contrato_id is not None:
        query = query.filter(Deuda.contrato_id == contrato_id)
    return query.options(
        selectinload(Deuda.pagos),
        selectinload(Deuda.contrato).selectinload(Contrato.contrato_inquilinos).selectinload(ContratoInquilino.inquilino),
        selectinload(Deuda.contrato).selectinload(Contrato.propiedad).selectinload(Propiedad.propietario),
    ).order_by(Deuda.ano_periodo, Deuda.mes_periodo, Deuda.id).all()


def can_pay_current_month(grupo_id, contrato_id, fecha_calculo=None):
    """Un contrato puede registrar pagos del período solo si no tiene deudas abiertas."""
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    deudas = _deudas_abiertas(grupo_id, contrato_id)
    if not deudas:
        return {'puede_pagar': True, 'deudas': [], 'total_deuda': CERO, 'mensaje': None}
    feriados = ProveedorFeriados()
    detalle = [_deuda_en_vivo(d, fecha_calculo, feriados) for d in deudas]
    total = redondear_peso(sum((d['total_vivo'] for d in detalle), CERO))
    periodos = ', '.join(d['etiqueta_periodo'] for d in detalle)
    mensaje = (f"El contrato tiene {len(detalle)} deuda(s) pendiente(s) ({periodos}) por ${total}. "
               f"Debe saldarlas antes de registrar pagos del mes.")
    return {'puede_pagar': False, 'deudas': detalle, 'total_deuda': total, 'mensaje': mensaje}


# --- Pago de deuda ---

def _validar_pago(monto, fecha_pago, metodo_pago):
    try:
        monto = redondear_2(monto)
    except ValueError as e:
        raise ValidationError(str(e))
    if monto <= 0:
        raise ValidationError('El monto del pago debe ser mayor a cero')
    try:
        fecha_pago = parse_fecha_local(fecha_pago)
    except ValueError as e:
        raise ValidationError(str(e))
    if fecha_pago is None:
        raise ValidationError('La fecha de pago es obligatoria')
    try:
        metodo = MetodoPago(metodo_pago or MetodoPago.EFECTIVO.value)
    except ValueError:
        raise ValidationError(f"Método de pago inválido: {metodo_pago}")
    return monto, fecha_pago, metodo


def obtener_deuda(grupo_id, deuda_id, session=None, bloquear=False):
    session = session or db.session
    deuda = session.get(Deuda, deuda_id, with_for_update=bloquear)
    if not deuda or deuda.grupo_id != grupo_id:
        raise NotFoundError('Deuda no encontrada')
    return deuda


def _estado_por_total(total, monto_pagado):
    if total <= TOLERANCIA_PAGO:
        return EstadoDeuda.PAID
    return EstadoDeuda.PARTIAL if monto_pagado > 0 else EstadoDeuda.OPEN


def pay_debt(grupo_id, deuda_id, monto, fecha_pago, metodo_pago=None, observaciones=None):
    """Registra un pago de deuda: primero alquiler, después punitorios, el resto como sobrepago.

    Si la deuda queda saldada el registro del período pasa a completo aunque su propio
    saldo no lo indique.
    """
    monto, fecha_pago, metodo = _validar_pago(monto, fecha_pago, metodo_pago)

    with unidad_de_trabajo() as session:
        deuda = obtener_deuda(grupo_id, deuda_id, session=session, bloquear=True)
        if deuda.estado == EstadoDeuda.PAID:
            raise ConflictError('La deuda ya está pagada')
        registro = session.get(RegistroMensual, deuda.registro_mensual_id, with_for_update=True)

        calculo = calculate_debt_punitory(deuda, fecha_pago)
        current_app.logger.debug(f"Deuda {deuda.id} al {fecha_pago}: {calculo.to_dict()}")
        restante = positivo(deuda.monto_alquiler_impago - deuda.monto_pagado)
        a_alquiler = min(monto, restante)
        a_punitorios = min(monto - a_alquiler, calculo.monto)
        sobrante = monto - a_alquiler - a_punitorios

        pago = PagoDeuda(fecha_pago=fecha_pago, monto=monto, punitorio_al_pago=calculo.monto,
                         metodo_pago=metodo, observaciones=observaciones)
        deuda.pagos.append(pago)

        transaccion = TransaccionPago(
            grupo_id=grupo_id,
            fecha_pago=fecha_pago,
            monto=monto,
            metodo_pago=metodo,
            monto_punitorios=a_punitorios,
            dias_punitorios=calculo.dias if a_punitorios > 0 else 0,
            punitorios_condonados=False,
            observaciones=observaciones or f"Pago de deuda {deuda.etiqueta_periodo}",
        )
        if a_alquiler > 0:
            transaccion.conceptos.append(ConceptoTransaccion(
                tipo=CONCEPTO_ALQUILER_DEUDA, descripcion=f"Alquiler adeudado {deuda.etiqueta_periodo}",
                monto=a_alquiler))
        if a_punitorios > 0:
            transaccion.conceptos.append(ConceptoTransaccion(
                tipo=CONCEPTO_PUNITORIOS, descripcion=f"Punitorios ({calculo.dias} días)",
                monto=a_punitorios))
        if sobrante > 0:
            transaccion.conceptos.append(ConceptoTransaccion(
                tipo=CONCEPTO_SOBREPAGO, descripcion='Saldo a favor', monto=sobrante))
        registro.transacciones.append(transaccion)
        # Con registro asignado antes del vínculo: el autoflush no la ve huérfana
        transaccion.pago_deuda = pago

        deuda.monto_pagado = deuda.monto_pagado + monto
        deuda.punitorios_acumulados = calculo.monto
        deuda.fecha_ultimo_pago = fecha_pago
        total = positivo(deuda.monto_alquiler_impago + deuda.punitorios_acumulados - deuda.monto_pagado)
        deuda.total_actual = total
        deuda.estado = _estado_por_total(total, deuda.monto_pagado)
        if deuda.estado == EstadoDeuda.PAID:
            deuda.fecha_cierre = datetime.utcnow()

        session.flush()
        _recalcular_registro(session, registro)
        if deuda.estado == EstadoDeuda.PAID and registro.estado != EstadoRegistro.COMPLETE:
            marcar_estado(registro, EstadoRegistro.COMPLETE, fecha_pago)

        resultado = {
            'deuda': deuda.to_dict(),
            'pago': pago.to_dict(),
            'transaccion': transaccion.to_dict(),
            'registro_mensual': registro.to_dict(),
            'punitorio': calculo.to_dict(),
        }

    current_app.logger.info(
        f"Pago de deuda {deuda_id}: {monto} (alquiler {a_alquiler}, punitorios {a_punitorios}). "
        f"Estado {resultado['deuda']['estado']}")
    return resultado


# --- Anulación LIFO ---

def _transaccion_del_pago(registro, pago):
    """Transacción espejo de un pago de deuda: por vínculo o, en datos sin vínculo, por fecha y monto."""
    if pago.transaccion is not None:
        return pago.transaccion
    for transaccion in transacciones_ordenadas(registro):
        if (transaccion.pago_deuda_id is None and transaccion.fecha_pago == pago.fecha_pago
                and abs(transaccion.monto - pago.monto) < Decimal('0.01')):
            return transaccion
    return None


def _cancelar_pago_deuda(session, deuda, pago, omitir_transaccion=False, fecha_calculo=None):
    pagos = sorted(deuda.pagos, key=lambda p: p.id)
    if not pagos or pagos[-1].id != pago.id:
        raise ConflictError('Solo se puede anular el último pago de la deuda')

    registro = deuda.registro
    if not omitir_transaccion:
        transaccion = _transaccion_del_pago(registro, pago)
        if transaccion is not None:
            registro.transacciones.remove(transaccion)

    anteriores = pagos[:-1]
    nuevo_pagado = positivo(deuda.monto_pagado - pago.monto)
    nuevo_acumulado = anteriores[-1].punitorio_al_pago if anteriores else CERO
    nueva_fecha_ultimo = anteriores[-1].fecha_pago if anteriores else None

    restante = positivo(deuda.monto_alquiler_impago - nuevo_pagado)
    if restante <= 0:
        calculo = calculate_debt_punitory(deuda, fecha_calculo, monto_pagado=nuevo_pagado,
                                          punitorios_acumulados=nuevo_acumulado,
                                          fecha_ultimo_pago=nueva_fecha_ultimo)
        estado = EstadoDeuda.PAID if calculo.monto <= TOLERANCIA_PAGO else EstadoDeuda.PARTIAL
    else:
        estado = EstadoDeuda.PARTIAL if nuevo_pagado > 0 else EstadoDeuda.OPEN

    deuda.pagos.remove(pago)
    deuda.monto_pagado = nuevo_pagado
    deuda.punitorios_acumulados = nuevo_acumulado
    deuda.fecha_ultimo_pago = nueva_fecha_ultimo
    deuda.total_actual = positivo(deuda.monto_alquiler_impago + nuevo_acumulado - nuevo_pagado)
    deuda.estado = estado
    if estado != EstadoDeuda.PAID:
        deuda.fecha_cierre = None

    session.flush()
    _recalcular_registro(session, registro)
    return deuda


def cancel_debt_payment(grupo_id, deuda_id, pago_id, fecha_calculo=None):
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    with unidad_de_trabajo() as session:
        deuda = obtener_deuda(grupo_id, deuda_id, session=session, bloquear=True)
        session.get(RegistroMensual, deuda.registro_mensual_id, with_for_update=True)
        pago = next((p for p in deuda.pagos if p.id == int(pago_id)), None)
        if pago is None:
            raise NotFoundError('Pago de deuda no encontrado')
        monto = pago.monto
        _cancelar_pago_deuda(session, deuda, pago, fecha_calculo=fecha_calculo)
        datos = deuda.to_dict()

    current_app.logger.info(f"Pago {pago_id} de la deuda {deuda_id} anulado ({monto}). Estado {datos['estado']}")
    return {'deuda': datos, 'mensaje': f"Pago de ${monto} anulado"}


# --- Reconciliación desde el registro ---

def _recalcular_deuda_desde_registro(session, deuda, registro):
    """Recalcula el alquiler impago de la deuda con los pagos previos al cierre que sigan en el registro."""
    previos = [t for t in transacciones_ordenadas(registro) if t.pago_deuda_id is None]
    pagado_previo = redondear_2(sum((t.monto for t in previos), CERO))
    punitorio_previo = CERO
    if previos and not previos[-1].punitorios_condonados:
        punitorio_previo = previos[-1].monto_punitorios

    imputacion = imputar_registro(registro, monto_punitorios=punitorio_previo, monto_pagado=pagado_previo)
    deuda.monto_alquiler_impago = redondear_2(imputacion.alquiler_impago)
    deuda.pago_previo_registro = pagado_previo
    deuda.monto_original = redondear_2(imputacion.total_original)
    total = positivo(deuda.monto_alquiler_impago + deuda.punitorios_acumulados - deuda.monto_pagado)
    deuda.total_actual = total
    estado = _estado_por_total(total, deuda.monto_pagado)
    if estado == EstadoDeuda.PAID and deuda.estado != EstadoDeuda.PAID:
        deuda.fecha_cierre = datetime.utcnow()
    elif estado != EstadoDeuda.PAID:
        deuda.fecha_cierre = None
    deuda.estado = estado
    return deuda


def recalculate_debt_from_monthly_record(grupo_id, deuda_id):
    with unidad_de_trabajo() as session:
        deuda = obtener_deuda(grupo_id, deuda_id, session=session, bloquear=True)
        registro = session.get(RegistroMensual, deuda.registro_mensual_id, with_for_update=True)
        _recalcular_deuda_desde_registro(session, deuda, registro)
        session.flush()
        _recalcular_registro(session, registro)
        datos = deuda.to_dict()
    return datos


# --- Listados ---

def get_open_debts(grupo_id, contrato_id=None, fecha_calculo=None):
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    feriados = ProveedorFeriados()
    return [_deuda_en_vivo(d, fecha_calculo, feriados) for d in _deudas_abiertas(grupo_id, contrato_id)]


def get_debts(grupo_id, filtros=None, fecha_calculo=None):
    filtros = filtros or {}
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    query = Deuda.query.filter(Deuda.grupo_id == grupo_id)
    if filtros.get('estado'):
        try:
            query = query.filter(Deuda.estado == EstadoDeuda(filtros['estado']))
        except ValueError:
            raise ValidationError(f"Estado de deuda inválido: {filtros['estado']}")
    if filtros.get('contrato_id'):
        query = query.filter(Deuda.contrato_id == int(filtros['contrato_id']))
    if filtros.get('ano'):
        query = query.filter(Deuda.ano_periodo == int(filtros['ano']))
    if filtros.get('mes'):
        query = query.filter(Deuda.mes_periodo == int(filtros['mes']))
    deudas = query.options(
        selectinload(Deuda.pagos),
        selectinload(Deuda.contrato).selectinload(Contrato.contrato_inquilinos).selectinload(ContratoInquilino.inquilino),
        selectinload(Deuda.contrato).selectinload(Contrato.propiedad).selectinload(Propiedad.propietario),
    ).order_by(Deuda.ano_periodo.desc(), Deuda.mes_periodo.desc(), Deuda.id.desc()).all()
    feriados = ProveedorFeriados()
    return [_deuda_en_vivo(d, fecha_calculo, feriados) for d in deudas]


def get_debt_by_id(grupo_id, deuda_id, fecha_calculo=None):
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    return _deuda_en_vivo(obtener_deuda(grupo_id, deuda_id), fecha_calculo, ProveedorFeriados())


def get_debts_summary(grupo_id, fecha_calculo=None):
    abiertas = get_open_debts(grupo_id, fecha_calculo=fecha_calculo)
    pagadas = db.session.execute(
        select(db.func.count(Deuda.id)).where(Deuda.grupo_id == grupo_id, Deuda.estado == EstadoDeuda.PAID)
    ).scalar_one()
    contratos = {d['contrato_id'] for d in abiertas}
    return {
        'deudas_abiertas': len(abiertas),
        'deudas_parciales': sum(1 for d in abiertas if d['estado'] == EstadoDeuda.PARTIAL.value),
        'deudas_pagadas': pagadas,
        'contratos_bloqueados': len(contratos),
        'total_alquiler_impago': redondear_peso(sum((d['restante_alquiler'] for d in abiertas), CERO)),
        'total_punitorios': redondear_peso(sum((d['punitorio_vivo'] for d in abiertas), CERO)),
        'total_adeudado': redondear_peso(sum((d['total_vivo'] for d in abiertas), CERO)),
    }
