# alquileres/routes/ajustes.py
# Ajustes de renta, contratos y feriados.
from flask import Blueprint, request, jsonify

from . import verificar_grupo, json_body
from ..forms import AjusteForm, DeshacerAjusteForm, ContratoForm, FeriadoForm, PeriodoForm, validar_formulario
from ..services import ajustes, contratos, feriados

# --- Blueprint ---
ajustes_bp = Blueprint('ajustes_bp', __name__)
ajustes_bp.before_request(verificar_grupo)


# --- Ajustes ---
@ajustes_bp.route('/ajustes/aplicar', methods=['POST'])
def aplicar_ajuste(grupo_id):
    form = validar_formulario(AjusteForm())
    resultado = ajustes.apply_adjustment(grupo_id, form.indice_ajuste_id.data, form.porcentaje.data,
                                         hoy=form.fecha.data)
    return jsonify({'success': True, **resultado})


@ajustes_bp.route('/ajustes/aplicar-todos', methods=['POST'])
def aplicar_todos_los_ajustes(grupo_id):
    resultado = ajustes.apply_all_next_month_adjustments(grupo_id, hoy=json_body().get('fecha'))
    return jsonify({'success': True, **resultado})


@ajustes_bp.route('/ajustes/deshacer', methods=['POST'])
def deshacer_ajuste(grupo_id):
    form = validar_formulario(DeshacerAjusteForm())
    resultado = ajustes.undo_adjustment_for_month(grupo_id, form.indice_ajuste_id.data, form.numero_mes.data)
    return jsonify({'success': True, **resultado})


@ajustes_bp.route('/ajustes/proximo-mes', methods=['GET'])
def contratos_con_ajuste_proximo(grupo_id):
    return jsonify({'success': True, 'contratos': ajustes.get_contracts_with_adjustment_next_month(
        grupo_id, hoy=request.args.get('fecha'))})


@ajustes_bp.route('/ajustes/calendario', methods=['GET'])
def contratos_con_ajuste_en_periodo(grupo_id):
    form = validar_formulario(PeriodoForm(formdata=request.args))
    return jsonify({'success': True, 'contratos': ajustes.get_contracts_with_adjustment_in_calendar(
        grupo_id, form.mes.data, form.ano.data)})


# --- Contratos ---
@ajustes_bp.route('/contratos', methods=['GET'])
def listar_contratos(grupo_id):
    return jsonify({'success': True, 'contratos': [c.resumen() for c in contratos.get_active_contracts(grupo_id)]})


@ajustes_bp.route('/contratos', methods=['POST'])
def registrar_contrato(grupo_id):
    form = validar_formulario(ContratoForm())
    datos = {campo: form[campo].data for campo in form.data if campo != 'csrf_token'}
    datos['inquilino_ids'] = json_body().get('inquilino_ids') or []
    contrato = contratos.registrar_contrato(grupo_id, datos)
    return jsonify({'success': True, 'contrato': contratos.get_contract(grupo_id, contrato.id)}), 201


@ajustes_bp.route('/contratos/por-vencer', methods=['GET'])
def contratos_por_vencer(grupo_id):
    meses = request.args.get('meses', type=int) or 2
    return jsonify({'success': True, 'contratos': contratos.get_expiring_contracts(
        grupo_id, meses=meses, hoy=request.args.get('fecha'))})


@ajustes_bp.route('/contratos/<int:contrato_id>', methods=['GET'])
def ver_contrato(grupo_id, contrato_id):
    return jsonify({'success': True, 'contrato': contratos.get_contract(grupo_id, contrato_id)})


@ajustes_bp.route('/contratos/<int:contrato_id>/finalizar', methods=['POST'])
def finalizar_contrato(grupo_id, contrato_id):
    contratos.finalizar_contrato(grupo_id, contrato_id)
    return jsonify({'success': True, 'message': 'Contrato finalizado'})


# --- Feriados ---
@ajustes_bp.route('/feriados', methods=['GET'])
def listar_feriados(grupo_id):
    ano = request.args.get('ano', type=int)
    if ano is None:
        return jsonify({'success': False, 'message': 'Debe indicar el año'}), 400
    return jsonify({'success': True, 'feriados': [f.to_dict() for f in feriados.list_holidays(ano)]})


@ajustes_bp.route('/feriados', methods=['POST'])
def agregar_feriado(grupo_id):
    form = validar_formulario(FeriadoForm())
    feriado = feriados.add_holiday(form.fecha.data, form.nombre.data)
    return jsonify({'success': True, 'feriado': feriado.to_dict()}), 201


@ajustes_bp.route('/feriados/<int:feriado_id>', methods=['DELETE'])
def eliminar_feriado(grupo_id, feriado_id):
    feriados.remove_holiday(feriado_id)
    return jsonify({'success': True, 'message': 'Feriado eliminado'})


@ajustes_bp.route('/feriados/cargar/<int:ano>', methods=['POST'])
def cargar_feriados(grupo_id, ano):
    creados = feriados.seed_holidays(ano)
    return jsonify({'success': True, 'creados': len(creados)})
