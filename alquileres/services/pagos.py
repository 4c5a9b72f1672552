# alquileres/services/pagos.py
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload

from ..models import (db, Contrato, ContratoInquilino, Inquilino, Propiedad, RegistroMensual,
                      TransaccionPago, ConceptoTransaccion, MetodoPago,
                      CONCEPTO_A_FAVOR, CONCEPTO_ALQUILER, CONCEPTO_IVA, CONCEPTO_PUNITORIOS,
                      CONCEPTO_SOBREPAGO)
from ..errors import ValidationError, NotFoundError, BlockedError
from ..utils.montos import CERO, redondear_2
from ..utils.punitorios import calculate_punitory, parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo
from .deudas import can_pay_current_month, _cancelar_pago_deuda, _recalcular_deuda_desde_registro
from .feriados import get_holidays_for_year
from .imputacion import imputar_registro
from .registros_mensuales import obtener_registro, ultima_transaccion, _recalcular_registro


def _punitorio_a_fecha(registro, fecha_pago):
    """Punitorio del alquiler todavía impago a ``fecha_pago``, con el reloj en el último pago."""
    contrato = registro.contrato
    imputacion = imputar_registro(registro, monto_punitorios=CERO)
    ultima = ultima_transaccion(registro)
    resultado = calculate_punitory(
        fecha_pago, registro.mes_periodo, registro.ano_periodo, imputacion.alquiler_impago,
        contrato.dia_inicio_punitorios, contrato.dia_gracia_punitorios, contrato.porcentaje_punitorios,
        get_holidays_for_year(registro.ano_periodo), ultima.fecha_pago if ultima else None)
    return imputacion, resultado, ultima


def _repartir_servicios(registro, adeudado):
    """Parte de cada cargo en lo adeudado de servicios; el redondeo se ajusta en el último."""
    cargos = [s for s in registro.servicios if s.monto_con_signo > 0]
    total_cargos = sum((s.monto_con_signo for s in cargos), CERO)
    if not cargos or total_cargos <= 0:
        return []
    partes, asignado = [], CERO
    for i, servicio in enumerate(cargos):
        if i == len(cargos) - 1:
            parte = adeudado - asignado
        else:
            parte = redondear_2(adeudado * servicio.monto_con_signo / total_cargos)
        asignado += parte
        partes.append((servicio, parte))
    return partes


def _conceptos_del_pago(registro, monto, imputacion, monto_punitorios, dias_punitorios):
    """Reparte ``monto`` en orden: servicios, IVA, alquiler, punitorios y sobrepago.

    El saldo a favor del mes anterior se informa pero no descuenta del monto.
    """
    conceptos = []
    restante = monto

    def _imputar(tipo, descripcion, importe):
        nonlocal restante
        aplicado = min(restante, importe)
        if aplicado > 0:
            conceptos.append(ConceptoTransaccion(tipo=tipo, descripcion=descripcion, monto=aplicado))
            restante -= aplicado

    if registro.saldo_anterior > 0:
        conceptos.append(ConceptoTransaccion(
            tipo=CONCEPTO_A_FAVOR, descripcion='Saldo a favor del mes anterior',
            monto=-registro.saldo_anterior, informativo=True))

    if imputacion.servicios_impagos > 0:
        for servicio, parte in _repartir_servicios(registro, imputacion.servicios_impagos):
            tipo = servicio.tipo_concepto
            _imputar(tipo.nombre, servicio.descripcion or tipo.etiqueta or tipo.nombre, parte)
    if imputacion.iva_impago > 0:
        _imputar(CONCEPTO_IVA, 'IVA 21%', imputacion.iva_impago)
    if imputacion.alquiler_impago > 0:
        _imputar(CONCEPTO_ALQUILER, f"Alquiler {registro.etiqueta_periodo}", imputacion.alquiler_impago)
    if monto_punitorios > 0:
        _imputar(CONCEPTO_PUNITORIOS, f"Punitorios ({dias_punitorios} días)", monto_punitorios)
    if restante > 0:
        conceptos.append(ConceptoTransaccion(tipo=CONCEPTO_SOBREPAGO, descripcion='Saldo a favor',
                                             monto=restante))
    return conceptos


def _siguiente_numero_recibo(session, grupo_id):
    ultimo = session.execute(
        select(func.max(TransaccionPago.numero_recibo)).where(TransaccionPago.grupo_id == grupo_id)
    ).scalar_one_or_none()
    numero = int(ultimo.split('-')[-1]) + 1 if ultimo else 1
    return f"REC-{numero:06d}"


def _validar_datos_pago(datos):
    try:
        monto = redondear_2(datos.get('monto'))
    except ValueError as e:
        raise ValidationError(str(e))
    if monto <= 0:
        raise ValidationError('El monto del pago debe ser mayor a cero')
    try:
        fecha_pago = parse_fecha_local(datos.get('fecha_pago'))
    except ValueError as e:
        raise ValidationError(str(e))
    if fecha_pago is None:
        raise ValidationError('La fecha de pago es obligatoria')
    metodo = datos.get('metodo_pago') or MetodoPago.EFECTIVO.value
    try:
        metodo = MetodoPago(metodo)
    except ValueError:
        raise ValidationError(f"Método de pago inválido: {metodo}")
    return monto, fecha_pago, metodo


def register_payment(grupo_id, registro_id, datos):
    """Registra un pago sobre un registro mensual.

    ``datos``: fecha_pago, monto, metodo_pago, condonar_punitorios, generar_recibo,
    observaciones. Falla con ``BlockedError`` si el contrato tiene deudas abiertas.
    """
    monto, fecha_pago, metodo = _validar_datos_pago(datos)
    condonar = bool(datos.get('condonar_punitorios'))

    with unidad_de_trabajo() as session:
        registro = obtener_registro(grupo_id, registro_id, session=session, bloquear=True)
        chequeo = can_pay_current_month(grupo_id, registro.contrato_id, fecha_calculo=fecha_pago)
        if not chequeo['puede_pagar']:
            raise BlockedError(chequeo['mensaje'], chequeo['deudas'])

        imputacion, punitorio, _ = _punitorio_a_fecha(registro, fecha_pago)
        monto_punitorios = CERO if condonar else punitorio.monto
        current_app.logger.debug(
            f"Pago registro {registro.id}: impago {imputacion.to_dict()}, punitorio {punitorio.monto} "
            f"({punitorio.dias} días desde {punitorio.desde}, gracia {punitorio.fecha_gracia})")
        conceptos = _conceptos_del_pago(registro, monto, imputacion, monto_punitorios, punitorio.dias)

        transaccion = TransaccionPago(
            grupo_id=grupo_id,
            fecha_pago=fecha_pago,
            monto=monto,
            metodo_pago=metodo,
            monto_punitorios=monto_punitorios,
            dias_punitorios=0 if condonar else punitorio.dias,
            punitorios_condonados=condonar,
            observaciones=datos.get('observaciones'),
            conceptos=conceptos,
        )
        if datos.get('generar_recibo') or metodo == MetodoPago.EFECTIVO:
            transaccion.recibo_generado = True
            transaccion.numero_recibo = _siguiente_numero_recibo(session, grupo_id)
        registro.transacciones.append(transaccion)

        registro.monto_punitorios = monto_punitorios
        registro.dias_punitorios = 0 if condonar else punitorio.dias
        registro.punitorios_condonados = condonar

        session.flush()
        _recalcular_registro(session, registro)
        resultado = {
            'transaccion': transaccion.to_dict(),
            'registro_mensual': registro.to_dict(),
            'punitorio': punitorio.to_dict(),
        }

    current_app.logger.info(
        f"Pago registrado en registro {registro_id}: {monto} ({metodo.value}), punitorios {monto_punitorios}"
        f"{' condonados' if condonar else ''}. Estado {resultado['registro_mensual']['estado']}")
    return resultado


def preview_punitory(grupo_id, registro_id, fecha_pago=None):
    """Punitorio que se cobraría al pagar en ``fecha_pago`` (no escribe nada)."""
    try:
        fecha_pago = parse_fecha_local(fecha_pago, default=date.today())
    except ValueError as e:
        raise ValidationError(str(e))
    registro = obtener_registro(grupo_id, registro_id)
    contrato = registro.contrato
    imputacion, punitorio, ultima = _punitorio_a_fecha(registro, fecha_pago)
    total_a_pagar = (imputacion.servicios_impagos + imputacion.iva_impago
                     + imputacion.alquiler_impago + punitorio.monto)
    return {
        'registro_mensual_id': registro.id,
        'etiqueta_periodo': registro.etiqueta_periodo,
        'fecha_pago': fecha_pago,
        'monto_alquiler': registro.monto_alquiler,
        'alquiler_impago': imputacion.alquiler_impago,
        'servicios_impagos': imputacion.servicios_impagos,
        'iva_impago': imputacion.iva_impago,
        'monto_pagado': registro.monto_pagado,
        'fecha_ultimo_pago': ultima.fecha_pago if ultima else None,
        'monto_ultimo_pago': ultima.monto if ultima else None,
        'porcentaje_diario': contrato.porcentaje_punitorios,
        'dia_inicio_punitorios': contrato.dia_inicio_punitorios,
        'dia_gracia_punitorios': contrato.dia_gracia_punitorios,
        'punitorio': punitorio.to_dict(),
        'total_a_pagar': redondear_2(total_a_pagar),
        'estado': registro.estado.value,
    }


def _pago_deuda_de_transaccion(transaccion, deuda):
    """Pago de deuda que originó la transacción: por vínculo o, sin vínculo, por fecha y monto."""
    if transaccion.pago_deuda is not None:
        return transaccion.pago_deuda
    if deuda is None:
        return None
    for pago in deuda.pagos:
        if (pago.transaccion is None and pago.fecha_pago == transaccion.fecha_pago
                and abs(pago.monto - transaccion.monto) < Decimal('0.01')):
            return pago
    return None


def delete_transaction(grupo_id, transaccion_id):
    """Elimina un pago. Si corresponde a un pago de deuda, se anula ese pago (solo el último)."""
    with unidad_de_trabajo() as session:
        transaccion = session.get(TransaccionPago, transaccion_id)
        if not transaccion or transaccion.grupo_id != grupo_id:
            raise NotFoundError('Transacción no encontrada')
        registro = obtener_registro(grupo_id, transaccion.registro_mensual_id, session=session, bloquear=True)
        deuda = registro.deuda
        eliminada = transaccion.to_dict()

        pago_deuda = _pago_deuda_de_transaccion(transaccion, deuda)
        registro.transacciones.remove(transaccion)
        if pago_deuda is not None:
            _cancelar_pago_deuda(session, deuda, pago_deuda, omitir_transaccion=True)
        else:
            session.flush()
            _recalcular_registro(session, registro)
            if deuda is not None:
                _recalcular_deuda_desde_registro(session, deuda, registro)
                _recalcular_registro(session, registro)
        datos_registro = registro.to_dict()

    current_app.logger.info(
        f"Transacción {transaccion_id} eliminada ({eliminada['monto']} del {eliminada['fecha_pago']})"
        f"{' y pago de deuda anulado' if pago_deuda is not None else ''}")
    return {'transaccion': eliminada, 'registro_mensual': datos_registro}


def get_transaction_by_id(grupo_id, transaccion_id):
    transaccion = db.session.get(TransaccionPago, transaccion_id)
    if not transaccion or transaccion.grupo_id != grupo_id:
        raise NotFoundError('Transacción no encontrada')
    datos = transaccion.to_dict()
    datos['etiqueta_periodo'] = transaccion.registro.etiqueta_periodo
    datos['contrato'] = transaccion.registro.contrato.resumen()
    return datos


def get_payment_history(grupo_id, filtros=None):
    """Transacciones del grupo, más recientes primero, con filtros y paginado simple."""
    filtros = filtros or {}
    query = (TransaccionPago.query
             .join(RegistroMensual, RegistroMensual.id == TransaccionPago.registro_mensual_id)
             .join(Contrato, Contrato.id == RegistroMensual.contrato_id)
             .join(Propiedad, Propiedad.id == Contrato.propiedad_id)
             .filter(TransaccionPago.grupo_id == grupo_id))

    if filtros.get('contrato_id'):
        query = query.filter(Contrato.id == int(filtros['contrato_id']))
    if filtros.get('mes'):
        query = query.filter(RegistroMensual.mes_periodo == int(filtros['mes']))
    if filtros.get('ano'):
        query = query.filter(RegistroMensual.ano_periodo == int(filtros['ano']))
    if filtros.get('metodo_pago'):
        try:
            query = query.filter(TransaccionPago.metodo_pago == MetodoPago(filtros['metodo_pago']))
        except ValueError:
            raise ValidationError(f"Método de pago inválido: {filtros['metodo_pago']}")
    fecha_desde = parse_fecha_local(filtros.get('fecha_desde'))
    fecha_hasta = parse_fecha_local(filtros.get('fecha_hasta'))
    if fecha_desde:
        query = query.filter(TransaccionPago.fecha_pago >= fecha_desde)
    if fecha_hasta:
        query = query.filter(TransaccionPago.fecha_pago <= fecha_hasta)
    busqueda = (filtros.get('busqueda') or '').strip()
    if busqueda:
        patron = f"%{busqueda}%"
        inquilinos = (select(ContratoInquilino.contrato_id)
                      .join(Inquilino, Inquilino.id == ContratoInquilino.inquilino_id)
                      .where(Inquilino.nombre.ilike(patron)))
        query = query.filter(or_(Propiedad.direccion.ilike(patron),
                                 TransaccionPago.numero_recibo.ilike(patron),
                                 Contrato.id.in_(inquilinos)))

    total = query.count()
    limite = min(int(filtros.get('limite') or 50), 500)
    desplazamiento = int(filtros.get('desplazamiento') or 0)
    transacciones = (query.options(selectinload(TransaccionPago.conceptos),
                                   selectinload(TransaccionPago.registro))
                     .order_by(TransaccionPago.fecha_pago.desc(), TransaccionPago.id.desc())
                     .limit(limite).offset(desplazamiento).all())

    resultado = []
    for transaccion in transacciones:
        datos = transaccion.to_dict()
        datos['etiqueta_periodo'] = transaccion.registro.etiqueta_periodo
        datos['contrato'] = transaccion.registro.contrato.resumen()
        resultado.append(datos)
    return {'transacciones': resultado, 'total': total}
