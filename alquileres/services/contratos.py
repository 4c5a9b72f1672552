# alquileres/services/contratos.py
import calendar
from datetime import date, timedelta

from flask import current_app
from sqlalchemy.orm import selectinload

from ..models import (db, Contrato, ContratoInquilino, Inquilino, Propiedad, IndiceAjuste,
                      HistorialActualizacionRenta, MotivoActualizacion,
                      DEFAULT_DIA_INICIO_PUNITORIOS, DEFAULT_DIA_GRACIA_PUNITORIOS,
                      DEFAULT_PORCENTAJE_PUNITORIOS)
from ..errors import ValidationError, NotFoundError, ConflictError
from ..utils.montos import a_decimal, redondear_2
from ..utils.punitorios import parse_fecha_local
from ..utils.transacciones import unidad_de_trabajo


# --- Calendario del contrato ---

def _indice_mes(ano, mes):
    return ano * 12 + (mes - 1)


def sumar_meses(fecha, meses):
    """Suma meses a una fecha ajustando el día al último del mes si hace falta."""
    total = _indice_mes(fecha.year, fecha.month) + meses
    ano, mes = divmod(total, 12)
    mes += 1
    dia = min(fecha.day, calendar.monthrange(ano, mes)[1])
    return date(ano, mes, dia)


def month_number_for_period(contrato, mes, ano):
    """Número de mes de contrato que corresponde al período calendario ``mes``/``ano``.

    El mes calendario de ``fecha_inicio`` es el mes ``mes_inicio`` del contrato. Puede
    devolver valores fuera de ``1..duracion_meses``.
    """
    inicio = contrato.fecha_inicio
    return (contrato.mes_inicio or 1) + _indice_mes(int(ano), int(mes)) - _indice_mes(inicio.year, inicio.month)


def calendar_period_for_month(contrato, numero_mes):
    """Inverso de ``month_number_for_period``: devuelve ``(mes, ano)``."""
    inicio = contrato.fecha_inicio
    total = _indice_mes(inicio.year, inicio.month) + (int(numero_mes) - (contrato.mes_inicio or 1))
    ano, mes = divmod(total, 12)
    return mes + 1, ano


def is_contract_active_for_month(contrato, numero_mes):
    return bool(contrato.activo) and 1 <= numero_mes <= contrato.duracion_meses


def current_contract_month(contrato, hoy=None):
    """Mes de contrato vigente a ``hoy``, acotado a ``1..duracion_meses``."""
    hoy = parse_fecha_local(hoy, default=date.today())
    numero = month_number_for_period(contrato, hoy.month, hoy.year)
    return max(1, min(numero, contrato.duracion_meses))


# --- Consultas ---

def _query_contratos(grupo_id):
    return Contrato.query.filter(Contrato.grupo_id == grupo_id).options(
        selectinload(Contrato.contrato_inquilinos).selectinload(ContratoInquilino.inquilino),
        selectinload(Contrato.propiedad).selectinload(Propiedad.propietario),
        selectinload(Contrato.indice_ajuste),
    )


def get_active_contracts(grupo_id):
    return _query_contratos(grupo_id).filter(Contrato.activo.is_(True)).order_by(Contrato.id).all()


def obtener_contrato(grupo_id, contrato_id, session=None, bloquear=False):
    session = session or db.session
    contrato = session.get(Contrato, contrato_id, with_for_update=bloquear)
    if not contrato or contrato.grupo_id != grupo_id:
        raise NotFoundError('Contrato no encontrado')
    return contrato


def get_contract(grupo_id, contrato_id):
    contrato = obtener_contrato(grupo_id, contrato_id)
    datos = contrato.resumen()
    datos['activo'] = contrato.activo
    datos['mes_inicio'] = contrato.mes_inicio
    datos['historial'] = [h.to_dict() for h in contrato.historial_actualizaciones.order_by(
        HistorialActualizacionRenta.efectivo_desde_mes, HistorialActualizacionRenta.id)]
    return datos


# --- Alta y baja ---

def registrar_contrato(grupo_id, datos, hoy=None):
    """Da de alta un contrato con sus inquilinos (el primero es el principal).

    Deja una fila INICIAL en el historial de rentas y calcula el primer mes de ajuste
    si el contrato tiene índice.
    """
    # Importación local para evitar ciclos (ajustes usa el calendario de este módulo)
    from .ajustes import calculate_next_adjustment_month

    fecha_inicio = parse_fecha_local(datos.get('fecha_inicio'))
    if fecha_inicio is None:
        raise ValidationError('La fecha de inicio es obligatoria')
    try:
        duracion = int(datos.get('duracion_meses') or 0)
        mes_inicio = int(datos.get('mes_inicio') or 1)
        renta = redondear_2(datos.get('renta_base'))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Datos de contrato inválidos: {e}")
    if duracion < 1:
        raise ValidationError('La duración debe ser de al menos un mes')
    if mes_inicio < 1 or mes_inicio > duracion:
        raise ValidationError('El mes de inicio debe estar dentro de la duración del contrato')
    if renta <= 0:
        raise ValidationError('La renta base debe ser mayor a cero')

    inquilino_ids = [int(i) for i in (datos.get('inquilino_ids') or [])]

    with unidad_de_trabajo() as session:
        propiedad = session.get(Propiedad, datos.get('propiedad_id'))
        if not propiedad or propiedad.grupo_id != grupo_id:
            raise NotFoundError('Propiedad no encontrada')

        activo_existente = Contrato.query.filter_by(propiedad_id=propiedad.id, activo=True).first()
        if activo_existente:
            raise ConflictError(f"La propiedad ya tiene un contrato activo (#{activo_existente.id})")

        indice = None
        if datos.get('indice_ajuste_id'):
            indice = session.get(IndiceAjuste, datos['indice_ajuste_id'])
            if not indice or indice.grupo_id != grupo_id:
                raise NotFoundError('Índice de ajuste no encontrado')

        contrato = Contrato(
            grupo_id=grupo_id,
            propiedad=propiedad,
            fecha_inicio=fecha_inicio,
            mes_inicio=mes_inicio,
            duracion_meses=duracion,
            renta_base=renta,
            indice_ajuste=indice,
            dia_inicio_punitorios=int(datos.get('dia_inicio_punitorios') or DEFAULT_DIA_INICIO_PUNITORIOS),
            dia_gracia_punitorios=int(datos.get('dia_gracia_punitorios') or DEFAULT_DIA_GRACIA_PUNITORIOS),
            porcentaje_punitorios=a_decimal(datos.get('porcentaje_punitorios'), DEFAULT_PORCENTAJE_PUNITORIOS),
            observaciones=datos.get('observaciones'),
            activo=True,
        )
        # Termina el día anterior al aniversario del último mes
        contrato.fecha_fin = sumar_meses(fecha_inicio, duracion - mes_inicio + 1) - timedelta(days=1)
        contrato.mes_actual = current_contract_month(contrato, hoy)
        if indice:
            contrato.proximo_mes_ajuste = calculate_next_adjustment_month(
                mes_inicio, contrato.mes_actual, indice.frecuencia_meses, duracion)

        for orden, inquilino_id in enumerate(inquilino_ids):
            inquilino = session.get(Inquilino, inquilino_id)
            if not inquilino or inquilino.grupo_id != grupo_id:
                raise NotFoundError(f"Inquilino {inquilino_id} no encontrado")
            contrato.contrato_inquilinos.append(
                ContratoInquilino(inquilino=inquilino, es_principal=(orden == 0), orden=orden))

        session.add(contrato)
        session.add(HistorialActualizacionRenta(
            contrato=contrato,
            efectivo_desde_mes=mes_inicio,
            fecha_actualizacion=parse_fecha_local(hoy, default=date.today()),
            renta_anterior=None,
            renta_nueva=renta,
            tipo_actualizacion=MotivoActualizacion.INICIAL,
            descripcion_adicional='Renta inicial del contrato',
        ))
        session.flush()
        contrato_id = contrato.id

    current_app.logger.info(f"Contrato {contrato_id} registrado para propiedad {propiedad.direccion}")
    return contrato


def finalizar_contrato(grupo_id, contrato_id):
    with unidad_de_trabajo() as session:
        contrato = obtener_contrato(grupo_id, contrato_id, session=session, bloquear=True)
        if not contrato.activo:
            raise ConflictError('El contrato ya está finalizado')
        contrato.activo = False
    current_app.logger.info(f"Contrato {contrato_id} finalizado")
    return contrato


# --- Alertas ---

def get_expiring_contracts(grupo_id, meses=2, hoy=None):
    """Contratos activos cuya fecha de fin cae dentro de los próximos ``meses`` meses."""
    hoy = parse_fecha_local(hoy, default=date.today())
    limite = sumar_meses(hoy, int(meses))
    contratos = _query_contratos(grupo_id).filter(
        Contrato.activo.is_(True),
        Contrato.fecha_fin.isnot(None),
        Contrato.fecha_fin >= hoy,
        Contrato.fecha_fin <= limite,
    ).order_by(Contrato.fecha_fin).all()

    resultado = []
    for contrato in contratos:
        datos = contrato.resumen()
        mes_vigente = current_contract_month(contrato, hoy)
        datos['dias_restantes'] = (contrato.fecha_fin - hoy).days
        datos['mes_vigente'] = mes_vigente
        datos['meses_restantes'] = contrato.duracion_meses - mes_vigente
        datos['progreso'] = round(mes_vigente * 100 / contrato.duracion_meses)
        resultado.append(datos)
    return resultado
