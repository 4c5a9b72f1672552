# alquileres/routes/deudas.py
from flask import Blueprint, request, jsonify

from . import verificar_grupo
from ..forms import PagoDeudaForm, PeriodoForm, validar_formulario
from ..services import deudas, cierre_mensual

# --- Blueprint ---
deudas_bp = Blueprint('deudas_bp', __name__)
deudas_bp.before_request(verificar_grupo)


@deudas_bp.route('/deudas', methods=['GET'])
def listar_deudas(grupo_id):
    filtros = request.args.to_dict()
    fecha_calculo = filtros.pop('fecha_calculo', None)
    return jsonify({'success': True, 'deudas': deudas.get_debts(grupo_id, filtros, fecha_calculo=fecha_calculo)})


@deudas_bp.route('/deudas/abiertas', methods=['GET'])
def listar_deudas_abiertas(grupo_id):
    abiertas = deudas.get_open_debts(grupo_id, contrato_id=request.args.get('contrato_id', type=int),
                                     fecha_calculo=request.args.get('fecha_calculo'))
    return jsonify({'success': True, 'deudas': abiertas})


@deudas_bp.route('/deudas/resumen', methods=['GET'])
def resumen_deudas(grupo_id):
    return jsonify({'success': True, 'resumen': deudas.get_debts_summary(
        grupo_id, fecha_calculo=request.args.get('fecha_calculo'))})


@deudas_bp.route('/deudas/<int:deuda_id>', methods=['GET'])
def ver_deuda(grupo_id, deuda_id):
    return jsonify({'success': True, 'deuda': deudas.get_debt_by_id(
        grupo_id, deuda_id, fecha_calculo=request.args.get('fecha_calculo'))})


@deudas_bp.route('/deudas/<int:deuda_id>/pagos', methods=['POST'])
def pagar_deuda(grupo_id, deuda_id):
    form = validar_formulario(PagoDeudaForm())
    resultado = deudas.pay_debt(grupo_id, deuda_id, form.monto.data, form.fecha_pago.data,
                                form.metodo_pago.data, form.observaciones.data)
    return jsonify({'success': True, **resultado}), 201


@deudas_bp.route('/deudas/<int:deuda_id>/pagos/<int:pago_id>', methods=['DELETE'])
def anular_pago_deuda(grupo_id, deuda_id, pago_id):
    resultado = deudas.cancel_debt_payment(grupo_id, deuda_id, pago_id)
    return jsonify({'success': True, **resultado})


@deudas_bp.route('/deudas/<int:deuda_id>/recalcular', methods=['POST'])
def recalcular_deuda(grupo_id, deuda_id):
    return jsonify({'success': True, 'deuda': deudas.recalculate_debt_from_monthly_record(grupo_id, deuda_id)})


@deudas_bp.route('/registros/<int:registro_id>/deuda', methods=['POST'])
def crear_deuda(grupo_id, registro_id):
    deuda = deudas.create_debt_from_monthly_record(grupo_id, registro_id)
    if deuda is None:
        return jsonify({'success': True, 'deuda': None, 'message': 'El registro no tiene saldo impago'})
    return jsonify({'success': True, 'deuda': deuda}), 201


@deudas_bp.route('/contratos/<int:contrato_id>/puede-pagar', methods=['GET'])
def puede_pagar(grupo_id, contrato_id):
    return jsonify({'success': True, **deudas.can_pay_current_month(
        grupo_id, contrato_id, fecha_calculo=request.args.get('fecha_calculo'))})


# --- Cierre de mes ---
@deudas_bp.route('/cierre-mensual/preview', methods=['GET'])
def previsualizar_cierre(grupo_id):
    form = validar_formulario(PeriodoForm(formdata=request.args))
    return jsonify({'success': True, **cierre_mensual.preview_close_month(grupo_id, form.mes.data, form.ano.data)})


@deudas_bp.route('/cierre-mensual', methods=['POST'])
def cerrar_mes(grupo_id):
    form = validar_formulario(PeriodoForm())
    resultado = cierre_mensual.close_month(grupo_id, form.mes.data, form.ano.data,
                                           fecha_calculo=form.fecha_calculo.data)
    return jsonify({'success': True, **resultado})
