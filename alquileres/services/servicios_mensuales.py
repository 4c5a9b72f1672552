# alquileres/services/servicios_mensuales.py
from flask import current_app

from ..models import ServicioMensual, TipoConcepto
from ..errors import ValidationError, NotFoundError, ConflictError
from ..utils.montos import redondear_2
from ..utils.transacciones import unidad_de_trabajo
from .contratos import obtener_contrato
from .registros_mensuales import obtener_registro, obtener_o_crear_registro, _recalcular_registro, _validar_periodo


def _validar_monto(monto):
    try:
        monto = redondear_2(monto)
    except ValueError as e:
        raise ValidationError(str(e))
    if monto < 0:
        raise ValidationError('El monto no puede ser negativo (los descuentos se cargan en positivo)')
    return monto


def _obtener_tipo(session, grupo_id, tipo_concepto_id):
    tipo = session.get(TipoConcepto, tipo_concepto_id)
    if not tipo or tipo.grupo_id != grupo_id:
        raise NotFoundError('Tipo de concepto no encontrado')
    return tipo


def _obtener_servicio(session, grupo_id, servicio_id):
    servicio = session.get(ServicioMensual, servicio_id)
    if not servicio or servicio.registro.grupo_id != grupo_id:
        raise NotFoundError('Servicio no encontrado')
    return servicio


def _upsert_servicio(registro, tipo, monto, descripcion):
    """Crea el servicio o actualiza el existente del mismo tipo en el registro."""
    servicio = next((s for s in registro.servicios if s.tipo_concepto_id == tipo.id), None)
    if servicio is None:
        servicio = ServicioMensual(tipo_concepto=tipo, monto=monto, descripcion=descripcion)
        registro.servicios.append(servicio)
    else:
        servicio.monto = monto
        if descripcion is not None:
            servicio.descripcion = descripcion
    return servicio


def add_service(grupo_id, registro_id, tipo_concepto_id, monto, descripcion=None):
    monto = _validar_monto(monto)
    with unidad_de_trabajo() as session:
        registro = obtener_registro(grupo_id, registro_id, session=session, bloquear=True)
        tipo = _obtener_tipo(session, grupo_id, tipo_concepto_id)
        if any(s.tipo_concepto_id == tipo.id for s in registro.servicios):
            raise ConflictError(f"El registro ya tiene un cargo de {tipo.etiqueta or tipo.nombre}")
        servicio = ServicioMensual(tipo_concepto=tipo, monto=monto, descripcion=descripcion)
        registro.servicios.append(servicio)
        session.flush()
        _recalcular_registro(session, registro)
        resultado = {'servicio': servicio.to_dict(), 'registro_mensual': registro.to_dict()}
    current_app.logger.info(f"Servicio {tipo.nombre} ({monto}) agregado al registro {registro_id}")
    return resultado


def update_service(grupo_id, servicio_id, monto, descripcion=None):
    monto = _validar_monto(monto)
    with unidad_de_trabajo() as session:
        servicio = _obtener_servicio(session, grupo_id, servicio_id)
        registro = obtener_registro(grupo_id, servicio.registro_mensual_id, session=session, bloquear=True)
        servicio.monto = monto
        if descripcion is not None:
            servicio.descripcion = descripcion
        session.flush()
        _recalcular_registro(session, registro)
        resultado = {'servicio': servicio.to_dict(), 'registro_mensual': registro.to_dict()}
    return resultado


def remove_service(grupo_id, servicio_id):
    with unidad_de_trabajo() as session:
        servicio = _obtener_servicio(session, grupo_id, servicio_id)
        registro = obtener_registro(grupo_id, servicio.registro_mensual_id, session=session, bloquear=True)
        registro.servicios.remove(servicio)
        session.flush()
        _recalcular_registro(session, registro)
        resultado = {'registro_mensual': registro.to_dict()}
    current_app.logger.info(f"Servicio {servicio_id} eliminado del registro {registro.id}")
    return resultado


def get_services_for_record(grupo_id, registro_id):
    registro = obtener_registro(grupo_id, registro_id)
    return [s.to_dict() for s in registro.servicios]


def _periodos(meses):
    periodos = []
    for item in meses or []:
        periodos.append(_validar_periodo(item.get('mes'), item.get('ano')))
    if not periodos:
        raise ValidationError('Debe indicar al menos un período')
    return periodos


def bulk_assign(grupo_id, contrato_id, tipo_concepto_id, monto, meses, descripcion=None):
    """Carga el mismo concepto en varios períodos de un contrato (crea los registros que falten).

    Los períodos fuera de la vigencia del contrato se devuelven en ``omitidos``.
    """
    monto = _validar_monto(monto)
    periodos = _periodos(meses)
    asignados, omitidos = [], []
    with unidad_de_trabajo() as session:
        contrato = obtener_contrato(grupo_id, contrato_id, session=session)
        tipo = _obtener_tipo(session, grupo_id, tipo_concepto_id)
        for mes, ano in periodos:
            registro = obtener_o_crear_registro(session, contrato, mes, ano)
            if registro is None:
                omitidos.append({'mes': mes, 'ano': ano})
                continue
            servicio = _upsert_servicio(registro, tipo, monto, descripcion)
            session.flush()
            _recalcular_registro(session, registro)
            asignados.append(dict(servicio.to_dict(), mes=mes, ano=ano))
    current_app.logger.info(
        f"Concepto {tipo.nombre} asignado a {len(asignados)} períodos del contrato {contrato_id}")
    return {'asignados': asignados, 'omitidos': omitidos}


def copy_config(grupo_id, contrato_id, mes_origen, ano_origen, destinos):
    """Copia los servicios de un período a otros períodos del mismo contrato."""
    mes_origen, ano_origen = _validar_periodo(mes_origen, ano_origen)
    periodos = _periodos(destinos)
    copiados, omitidos = [], []
    with unidad_de_trabajo() as session:
        contrato = obtener_contrato(grupo_id, contrato_id, session=session)
        origen = contrato.registros_mensuales.filter_by(mes_periodo=mes_origen, ano_periodo=ano_origen).first()
        if origen is None:
            raise NotFoundError('No existe el registro de origen')
        servicios = [(s.tipo_concepto, s.monto, s.descripcion) for s in origen.servicios]
        if not servicios:
            return {'copiados': [], 'omitidos': []}
        for mes, ano in periodos:
            if (mes, ano) == (mes_origen, ano_origen):
                continue
            registro = obtener_o_crear_registro(session, contrato, mes, ano)
            if registro is None:
                omitidos.append({'mes': mes, 'ano': ano})
                continue
            nuevos = [_upsert_servicio(registro, tipo, monto, descripcion) for tipo, monto, descripcion in servicios]
            session.flush()
            _recalcular_registro(session, registro)
            copiados.extend(dict(s.to_dict(), mes=mes, ano=ano) for s in nuevos)
    return {'copiados': copiados, 'omitidos': omitidos}
