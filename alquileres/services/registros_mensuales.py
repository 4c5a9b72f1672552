# alquileres/services/registros_mensuales.py
"""Registros mensuales: una fila por contrato y período con renta, servicios, saldo
arrastrado, punitorios y pagos.

Los registros se crean al consultar un período por primera vez. Los totales guardados
reflejan el último evento de pago; los valores "en vivo" (punitorio a la fecha de
cálculo, saldo real cuando existe deuda) se calculan al listar y no se persisten.
"""
from datetime import date

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models import (db, Contrato, ContratoInquilino, Propiedad, RegistroMensual, ServicioMensual,
                      TransaccionPago, Deuda, EstadoRegistro, EstadoDeuda, ESTADOS_DEUDA_ABIERTA,
                      CONCEPTO_PUNITORIOS)
from ..errors import ValidationError, NotFoundError
from ..utils.montos import CERO, redondear_2, redondear_peso, positivo
from ..utils.punitorios import calculate_punitory, parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo
from .ajustes import rent_for_month
from .contratos import month_number_for_period, is_contract_active_for_month
from .feriados import ProveedorFeriados
from .imputacion import imputar_registro

INTENTOS_GENERACION = 2


def _validar_periodo(mes, ano):
    try:
        mes, ano = int(mes), int(ano)
    except (TypeError, ValueError):
        raise ValidationError('Mes y año deben ser numéricos')
    if not 1 <= mes <= 12:
        raise ValidationError('El mes debe estar entre 1 y 12')
    if not 2000 <= ano <= 2100:
        raise ValidationError('Año fuera de rango')
    return mes, ano


def _periodo_anterior(mes, ano):
    return (12, ano - 1) if mes == 1 else (mes - 1, ano)


def transacciones_ordenadas(registro):
    """Transacciones por fecha de pago y alta (la colección puede tener altas sin ordenar)."""
    return sorted(registro.transacciones, key=lambda t: (t.fecha_pago, t.id or 0))


def ultima_transaccion(registro):
    transacciones = transacciones_ordenadas(registro)
    return transacciones[-1] if transacciones else None


def obtener_registro(grupo_id, registro_id, session=None, bloquear=False):
    session = session or db.session
    registro = session.get(RegistroMensual, registro_id, with_for_update=bloquear)
    if not registro or registro.grupo_id != grupo_id:
        raise NotFoundError('Registro mensual no encontrado')
    return registro


# --- Recalculo ---

def _recalcular_registro(session, registro):
    """Recalcula totales y estado a partir de servicios, transacciones y deuda.

    El punitorio vigente es el congelado en la transacción más reciente; sin
    transacciones vuelve a cero.
    """
    registro.total_servicios = redondear_2(sum((s.monto_con_signo for s in registro.servicios), CERO))
    transacciones = transacciones_ordenadas(registro)
    registro.monto_pagado = redondear_2(sum((t.monto for t in transacciones), CERO))

    ultima = transacciones[-1] if transacciones else None
    if ultima is None:
        registro.monto_punitorios = CERO
        registro.dias_punitorios = 0
        registro.punitorios_condonados = False
    elif ultima.punitorios_condonados:
        registro.monto_punitorios = CERO
        registro.dias_punitorios = 0
        registro.punitorios_condonados = True
    else:
        registro.monto_punitorios = ultima.monto_punitorios
        registro.dias_punitorios = ultima.dias_punitorios or 0
        registro.punitorios_condonados = False

    total = (registro.monto_alquiler + registro.total_servicios + registro.monto_punitorios
             + registro.monto_iva - registro.saldo_anterior)
    registro.total_adeudado = redondear_2(positivo(total))
    registro.saldo = redondear_2(registro.monto_pagado - registro.total_adeudado)

    deuda = registro.deuda
    if deuda is not None and deuda.abierta:
        estado = EstadoRegistro.PARTIAL if registro.monto_pagado > 0 else EstadoRegistro.PENDING
    elif deuda is not None and deuda.estado == EstadoDeuda.PAID:
        estado = EstadoRegistro.COMPLETE
    elif registro.saldo >= 0 and registro.monto_pagado > 0:
        estado = EstadoRegistro.COMPLETE
    elif registro.monto_pagado > 0:
        estado = EstadoRegistro.PARTIAL
    else:
        estado = EstadoRegistro.PENDING
    marcar_estado(registro, estado, ultima.fecha_pago if ultima else None)
    return registro


def marcar_estado(registro, estado, fecha_pago=None):
    registro.estado = estado
    completo = estado == EstadoRegistro.COMPLETE
    registro.pagado = completo
    registro.cancelado = completo
    if completo:
        if registro.fecha_pago_total is None:
            registro.fecha_pago_total = fecha_pago or date.today()
    else:
        registro.fecha_pago_total = None


def recalculate_monthly_record(grupo_id, registro_id):
    with unidad_de_trabajo() as session:
        registro = obtener_registro(grupo_id, registro_id, session=session, bloquear=True)
        _recalcular_registro(session, registro)
        datos = registro.to_dict()
    return datos


# --- Generación ---

def _crear_registro(session, contrato, numero_mes, mes, ano, saldo_anterior):
    renta = rent_for_month(contrato, numero_mes, session=session)
    total = positivo(renta - saldo_anterior)
    registro = RegistroMensual(
        grupo_id=contrato.grupo_id,
        contrato=contrato,
        numero_mes=numero_mes,
        mes_periodo=mes,
        ano_periodo=ano,
        monto_alquiler=renta,
        total_servicios=CERO,
        saldo_anterior=saldo_anterior,
        monto_punitorios=CERO,
        dias_punitorios=0,
        total_adeudado=total,
        monto_pagado=CERO,
        saldo=-total,
        estado=EstadoRegistro.PENDING,
    )
    session.add(registro)
    return registro


def _saldo_a_favor_previo(session, contrato, mes, ano):
    mes_ant, ano_ant = _periodo_anterior(mes, ano)
    previo = session.execute(
        select(RegistroMensual.saldo).where(RegistroMensual.contrato_id == contrato.id,
                                            RegistroMensual.mes_periodo == mes_ant,
                                            RegistroMensual.ano_periodo == ano_ant)
    ).scalar_one_or_none()
    return positivo(previo) if previo is not None else CERO


def obtener_o_crear_registro(session, contrato, mes, ano):
    """Registro del contrato para el período, o ``None`` si el contrato no rige ese mes."""
    numero_mes = month_number_for_period(contrato, mes, ano)
    if not is_contract_active_for_month(contrato, numero_mes):
        return None
    registro = session.execute(
        select(RegistroMensual).where(RegistroMensual.contrato_id == contrato.id,
                                      RegistroMensual.mes_periodo == mes,
                                      RegistroMensual.ano_periodo == ano)
    ).scalar_one_or_none()
    if registro is None:
        saldo_previo = _saldo_a_favor_previo(session, contrato, mes, ano) if numero_mes > 1 else CERO
        registro = _crear_registro(session, contrato, numero_mes, mes, ano, saldo_previo)
        session.flush()
    return registro


def _asegurar_registros(session, grupo_id, mes, ano):
    """Crea los registros faltantes del período y refresca el saldo arrastrado de los existentes."""
    contratos = session.execute(
        select(Contrato).where(Contrato.grupo_id == grupo_id, Contrato.activo.is_(True))
        .options(selectinload(Contrato.contrato_inquilinos).selectinload(ContratoInquilino.inquilino),
                 selectinload(Contrato.propiedad).selectinload(Propiedad.propietario),
                 selectinload(Contrato.indice_ajuste))
        .order_by(Contrato.id)
    ).scalars().all()
    contratos = [c for c in contratos if is_contract_active_for_month(c, month_number_for_period(c, mes, ano))]
    if not contratos:
        return []
    ids = [c.id for c in contratos]

    existentes = {r.contrato_id: r for r in session.execute(
        select(RegistroMensual).where(RegistroMensual.contrato_id.in_(ids),
                                      RegistroMensual.mes_periodo == mes,
                                      RegistroMensual.ano_periodo == ano)
        .options(selectinload(RegistroMensual.servicios).selectinload(ServicioMensual.tipo_concepto),
                 selectinload(RegistroMensual.transacciones).selectinload(TransaccionPago.conceptos),
                 selectinload(RegistroMensual.deuda).selectinload(Deuda.pagos))
    ).scalars()}

    mes_ant, ano_ant = _periodo_anterior(mes, ano)
    saldos_previos = dict(session.execute(
        select(RegistroMensual.contrato_id, RegistroMensual.saldo)
        .where(RegistroMensual.contrato_id.in_(ids),
               RegistroMensual.mes_periodo == mes_ant,
               RegistroMensual.ano_periodo == ano_ant)
    ).all())

    registros, creados, refrescados = [], 0, 0
    for contrato in contratos:
        numero_mes = month_number_for_period(contrato, mes, ano)
        saldo_previo = positivo(saldos_previos.get(contrato.id)) if numero_mes > 1 else CERO
        registro = existentes.get(contrato.id)
        if registro is None:
            registro = _crear_registro(session, contrato, numero_mes, mes, ano, saldo_previo)
            creados += 1
        elif registro.estado != EstadoRegistro.COMPLETE and registro.saldo_anterior != saldo_previo:
            registro.saldo_anterior = saldo_previo
            _recalcular_registro(session, registro)
            refrescados += 1
        registros.append(registro)

    if creados or refrescados:
        session.flush()
        current_app.logger.info(
            f"Registros {mes:02d}/{ano} grupo {grupo_id}: {creados} creados, {refrescados} con saldo anterior actualizado.")
    return registros


# --- Valores en vivo ---

def _punitorio_en_vivo(registro, contrato, feriados, fecha_calculo):
    """Punitorio congelado más lo devengado desde el último pago sobre el alquiler impago."""
    congelado = registro.monto_punitorios
    if registro.estado == EstadoRegistro.COMPLETE or registro.punitorios_condonados:
        return congelado, registro.dias_punitorios, None

    alquiler_impago = imputar_registro(registro, monto_punitorios=CERO).alquiler_impago
    if alquiler_impago <= 0:
        return congelado, registro.dias_punitorios, None

    ultima = ultima_transaccion(registro)
    resultado = calculate_punitory(
        fecha_calculo, registro.mes_periodo, registro.ano_periodo, alquiler_impago,
        contrato.dia_inicio_punitorios, contrato.dia_gracia_punitorios, contrato.porcentaje_punitorios,
        feriados, ultima.fecha_pago if ultima else None)
    return congelado + resultado.monto, resultado.dias, resultado


def _punitorios_cobrados_en_deuda(registro):
    """Punitorios imputados por los pagos de deuda del registro (sin el sobrepago)."""
    return sum((c.monto for t in registro.transacciones if t.pago_deuda_id is not None
                for c in t.conceptos if c.tipo == CONCEPTO_PUNITORIOS), CERO)


def enriquecer_registro(registro, feriados_por_ano, fecha_calculo):
    """Registro plano con totales en vivo y, si hay deuda, totales históricos."""
    # Importación local para evitar ciclos (deudas recalcula registros)
    from .deudas import calculate_debt_punitory

    contrato = registro.contrato
    datos = registro.to_dict()
    datos['etiqueta_periodo'] = registro.etiqueta_periodo
    datos['contrato'] = contrato.resumen()
    datos['monto_iva'] = registro.monto_iva

    punitorio_vivo, dias_vivo, detalle = _punitorio_en_vivo(
        registro, contrato, feriados_por_ano(registro.ano_periodo), fecha_calculo)
    total_vivo = max(registro.monto_alquiler + registro.total_servicios + punitorio_vivo
                     + registro.monto_iva - registro.saldo_anterior, CERO)
    saldo_vivo = registro.monto_pagado - total_vivo
    datos.update({
        'punitorio_vivo': redondear_2(punitorio_vivo),
        'dias_punitorio_vivo': dias_vivo,
        'punitorio_detalle': detalle.to_dict() if detalle else None,
        'total_vivo': redondear_2(total_vivo),
        'saldo_vivo': redondear_2(saldo_vivo),
    })

    deuda = registro.deuda
    if deuda is None:
        saldo_real = saldo_vivo
        datos['deuda'] = None
    else:
        if deuda.abierta:
            calculo = calculate_debt_punitory(deuda, fecha_calculo, contrato=contrato,
                                              feriados=feriados_por_ano(deuda.ano_periodo))
            punitorio_deuda = calculo.monto
            restante = positivo(deuda.monto_alquiler_impago - deuda.monto_pagado)
            total_deuda_vivo = restante + punitorio_deuda
        else:
            punitorio_deuda = CERO
            total_deuda_vivo = CERO
        punitorios_historicos = _punitorios_cobrados_en_deuda(registro) + punitorio_deuda
        total_historico = (registro.monto_alquiler + registro.total_servicios + punitorios_historicos
                           + registro.monto_iva - registro.saldo_anterior)
        saldo_real = registro.monto_pagado - total_historico
        current_app.logger.debug(
            f"Registro {registro.id} con deuda {deuda.id} ({deuda.estado.value}): punitorios históricos "
            f"{punitorios_historicos}, total histórico {total_historico}, pagado {registro.monto_pagado}")
        datos['deuda'] = {
            'id': deuda.id,
            'estado': deuda.estado.value,
            'monto_alquiler_impago': deuda.monto_alquiler_impago,
            'monto_pagado': deuda.monto_pagado,
            'punitorio_vivo': punitorio_deuda,
            'total_vivo': redondear_2(total_deuda_vivo),
        }
        datos['punitorios_historicos'] = redondear_2(punitorios_historicos)
        datos['total_historico'] = redondear_2(total_historico)

    datos['a_favor_proximo_mes'] = redondear_2(positivo(saldo_real))
    datos['debe_proximo_mes'] = redondear_2(positivo(-saldo_real))
    return datos


def _coincide_busqueda(datos, texto):
    texto = texto.lower()
    contrato = datos['contrato']
    campos = [contrato['inquilino'], contrato.get('propietario') or '']
    if contrato['propiedad']:
        campos += [contrato['propiedad']['direccion'] or '', contrato['propiedad']['codigo'] or '']
    return any(texto in c.lower() for c in campos)


def _aplicar_filtros(registros, filtros):
    if not filtros:
        return registros
    estado = filtros.get('estado')
    contrato_id = filtros.get('contrato_id')
    busqueda = (filtros.get('busqueda') or '').strip()
    con_deuda = filtros.get('con_deuda')
    resultado = []
    for datos in registros:
        if estado and datos['estado'] != estado:
            continue
        if contrato_id and datos['contrato_id'] != int(contrato_id):
            continue
        if busqueda and not _coincide_busqueda(datos, busqueda):
            continue
        if con_deuda is not None and bool(datos['deuda']) != bool(con_deuda):
            continue
        resultado.append(datos)
    return resultado


def _contratos_bloqueados(session, grupo_id):
    """Contratos con alguna deuda abierta (no pueden registrar pagos del mes)."""
    return set(session.execute(
        select(Deuda.contrato_id).where(Deuda.grupo_id == grupo_id, Deuda.estado.in_(ESTADOS_DEUDA_ABIERTA))
    ).scalars())


def _resumen(registros):
    resumen = {
        'cantidad': len(registros),
        'pendientes': 0,
        'parciales': 0,
        'completos': 0,
        'con_deuda': 0,
        'contratos_bloqueados': 0,
        'total_adeudado': CERO,
        'total_pagado': CERO,
        'total_punitorios': CERO,
        'saldo_pendiente': CERO,
    }
    claves_estado = {'PENDING': 'pendientes', 'PARTIAL': 'parciales', 'COMPLETE': 'completos'}
    for datos in registros:
        resumen[claves_estado[datos['estado']]] += 1
        if datos['deuda']:
            resumen['con_deuda'] += 1
        if datos.get('bloqueado'):
            resumen['contratos_bloqueados'] += 1
        resumen['total_adeudado'] += datos['total_vivo']
        resumen['total_pagado'] += datos['monto_pagado']
        resumen['total_punitorios'] += datos['punitorio_vivo']
        resumen['saldo_pendiente'] += datos['debe_proximo_mes']
    for clave in ('total_adeudado', 'total_pagado', 'total_punitorios', 'saldo_pendiente'):
        resumen[clave] = redondear_peso(resumen[clave])
    return resumen


def get_or_create_monthly_records(grupo_id, mes, ano, filtros=None, fecha_calculo=None):
    """Registros del período (creando los que falten) con valores en vivo y resumen.

    Llamadas repetidas sin pagos de por medio no escriben nada y devuelven los mismos
    totales.
    """
    mes, ano = _validar_periodo(mes, ano)
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    for intento in range(1, INTENTOS_GENERACION + 1):
        try:
            with unidad_de_trabajo() as session:
                registros = _asegurar_registros(session, grupo_id, mes, ano)
                feriados = ProveedorFeriados()
                datos = [enriquecer_registro(r, feriados, fecha_calculo) for r in registros]
                bloqueados = _contratos_bloqueados(session, grupo_id)
                for item in datos:
                    item['bloqueado'] = item['contrato_id'] in bloqueados
            break
        except IntegrityError:
            # Otra petición creó los registros del período entre la lectura y el flush
            if intento == INTENTOS_GENERACION:
                raise
            current_app.logger.warning(
                f"Registros {mes:02d}/{ano} grupo {grupo_id} creados en paralelo; se vuelven a leer.")

    datos = _aplicar_filtros(datos, filtros)
    return {'mes': mes, 'ano': ano, 'registros': datos, 'resumen': _resumen(datos)}


def get_monthly_record_by_id(grupo_id, registro_id, fecha_calculo=None):
    fecha_calculo = parse_fecha_local(fecha_calculo, default=date.today())
    registro = obtener_registro(grupo_id, registro_id)
    return enriquecer_registro(registro, ProveedorFeriados(), fecha_calculo)


def get_records_for_contract(grupo_id, contrato_id):
    """Historial de registros de un contrato, del más reciente al más antiguo."""
    registros = RegistroMensual.query.filter(
        RegistroMensual.grupo_id == grupo_id,
        RegistroMensual.contrato_id == contrato_id,
    ).order_by(RegistroMensual.ano_periodo.desc(), RegistroMensual.mes_periodo.desc()).all()
    return [dict(r.to_dict(), etiqueta_periodo=r.etiqueta_periodo) for r in registros]
