# alquileres/routes/registros.py
from flask import Blueprint, request, jsonify

from . import verificar_grupo, json_body
from ..forms import PeriodoForm, PagoForm, ServicioForm, MontoServicioForm, validar_formulario
from ..services import registros_mensuales, servicios_mensuales, pagos

# --- Blueprint ---
registros_bp = Blueprint('registros_bp', __name__)
registros_bp.before_request(verificar_grupo)


# --- Registros mensuales ---
@registros_bp.route('/registros', methods=['GET'])
def listar_registros(grupo_id):
    form = validar_formulario(PeriodoForm(formdata=request.args))
    resultado = registros_mensuales.get_or_create_monthly_records(
        grupo_id, form.mes.data, form.ano.data, filtros=form.filtros(), fecha_calculo=form.fecha_calculo.data)
    return jsonify({'success': True, **resultado})


@registros_bp.route('/registros/<int:registro_id>', methods=['GET'])
def ver_registro(grupo_id, registro_id):
    registro = registros_mensuales.get_monthly_record_by_id(
        grupo_id, registro_id, fecha_calculo=request.args.get('fecha_calculo'))
    return jsonify({'success': True, 'registro': registro})


@registros_bp.route('/registros/<int:registro_id>/recalcular', methods=['POST'])
def recalcular_registro(grupo_id, registro_id):
    registro = registros_mensuales.recalculate_monthly_record(grupo_id, registro_id)
    return jsonify({'success': True, 'registro': registro})


@registros_bp.route('/contratos/<int:contrato_id>/registros', methods=['GET'])
def registros_de_contrato(grupo_id, contrato_id):
    return jsonify({'success': True, 'registros': registros_mensuales.get_records_for_contract(grupo_id, contrato_id)})


# --- Servicios del mes ---
@registros_bp.route('/registros/<int:registro_id>/servicios', methods=['GET'])
def listar_servicios(grupo_id, registro_id):
    return jsonify({'success': True, 'servicios': servicios_mensuales.get_services_for_record(grupo_id, registro_id)})


@registros_bp.route('/registros/<int:registro_id>/servicios', methods=['POST'])
def agregar_servicio(grupo_id, registro_id):
    form = validar_formulario(ServicioForm())
    resultado = servicios_mensuales.add_service(
        grupo_id, registro_id, form.tipo_concepto_id.data, form.monto.data, form.descripcion.data)
    return jsonify({'success': True, **resultado}), 201


@registros_bp.route('/servicios/<int:servicio_id>', methods=['PUT'])
def editar_servicio(grupo_id, servicio_id):
    form = validar_formulario(MontoServicioForm())
    resultado = servicios_mensuales.update_service(grupo_id, servicio_id, form.monto.data, form.descripcion.data)
    return jsonify({'success': True, **resultado})


@registros_bp.route('/servicios/<int:servicio_id>', methods=['DELETE'])
def eliminar_servicio(grupo_id, servicio_id):
    resultado = servicios_mensuales.remove_service(grupo_id, servicio_id)
    return jsonify({'success': True, **resultado})


@registros_bp.route('/contratos/<int:contrato_id>/servicios/asignacion-masiva', methods=['POST'])
def asignar_servicio_masivo(grupo_id, contrato_id):
    datos = json_body()
    resultado = servicios_mensuales.bulk_assign(
        grupo_id, contrato_id, datos.get('tipo_concepto_id'), datos.get('monto'),
        datos.get('meses'), datos.get('descripcion'))
    return jsonify({'success': True, **resultado})


@registros_bp.route('/contratos/<int:contrato_id>/servicios/copiar', methods=['POST'])
def copiar_servicios(grupo_id, contrato_id):
    datos = json_body()
    resultado = servicios_mensuales.copy_config(
        grupo_id, contrato_id, datos.get('mes_origen'), datos.get('ano_origen'), datos.get('destinos'))
    return jsonify({'success': True, **resultado})


# --- Pagos ---
@registros_bp.route('/registros/<int:registro_id>/pagos', methods=['POST'])
def registrar_pago(grupo_id, registro_id):
    form = validar_formulario(PagoForm())
    resultado = pagos.register_payment(grupo_id, registro_id, form.datos())
    return jsonify({'success': True, **resultado}), 201


@registros_bp.route('/registros/<int:registro_id>/punitorios', methods=['GET'])
def previsualizar_punitorios(grupo_id, registro_id):
    detalle = pagos.preview_punitory(grupo_id, registro_id, request.args.get('fecha_pago'))
    return jsonify({'success': True, **detalle})


@registros_bp.route('/transacciones', methods=['GET'])
def historial_pagos(grupo_id):
    filtros = request.args.to_dict()
    return jsonify({'success': True, **pagos.get_payment_history(grupo_id, filtros)})


@registros_bp.route('/transacciones/<int:transaccion_id>', methods=['GET'])
def ver_transaccion(grupo_id, transaccion_id):
    return jsonify({'success': True, 'transaccion': pagos.get_transaction_by_id(grupo_id, transaccion_id)})


@registros_bp.route('/transacciones/<int:transaccion_id>', methods=['DELETE'])
def eliminar_transaccion(grupo_id, transaccion_id):
    resultado = pagos.delete_transaction(grupo_id, transaccion_id)
    return jsonify({'success': True, **resultado})
