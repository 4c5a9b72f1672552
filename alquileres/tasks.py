# alquileres/tasks.py
from datetime import date

from flask import current_app

from .models import Grupo
from .services.feriados import seed_holidays
from .services.contratos import get_expiring_contracts
from .services.ajustes import get_contracts_with_adjustment_next_month


# --- Tarea: Feriados del año ---
def asegurar_feriados(app_context):
    """Carga los feriados fijos del año en curso y del siguiente (los existentes no se tocan)."""
    with app_context.app_context():
        current_app.logger.info("Tarea Programada: Verificando feriados cargados...")
        hoy = date.today()
        for ano in (hoy.year, hoy.year + 1):
            try:
                seed_holidays(ano)
            except Exception as e:
                current_app.logger.error(f"Error cargando feriados de {ano}: {e}", exc_info=True)
        current_app.logger.info("Tarea Programada: Verificación de feriados finalizada.")


# --- Tarea: Contratos por Vencer ---
def revisar_alertas_contratos(app_context):
    """Deja en el log los contratos que vencen dentro del plazo de alerta y los que ajustan el mes próximo.

    Devuelve la cantidad de contratos por vencer.
    """
    with app_context.app_context():
        current_app.logger.info("Tarea Programada: Verificando contratos por vencer...")
        meses = current_app.config.get('ALERTA_MESES_VENCIMIENTO', 2)
        total = 0
        for grupo in Grupo.query.order_by(Grupo.id).all():
            try:
                por_vencer = get_expiring_contracts(grupo.id, meses=meses)
                con_ajuste = get_contracts_with_adjustment_next_month(grupo.id)
            except Exception as e:
                current_app.logger.error(f"Error revisando contratos del grupo {grupo.id}: {e}", exc_info=True)
                continue
            for contrato in por_vencer:
                direccion = contrato['propiedad']['direccion'] if contrato['propiedad'] else 'N/A'
                current_app.logger.warning(
                    f"El contrato #{contrato['id']} (Propiedad: {direccion}, Inquilino: {contrato['inquilino']}) "
                    f"vence en {contrato['dias_restantes']} días ({contrato['fecha_fin'].strftime('%d/%m/%Y')}).")
            for contrato in con_ajuste:
                current_app.logger.info(
                    f"El contrato #{contrato['id']} ({contrato['inquilino']}) ajusta renta en {contrato['periodo_ajuste']} "
                    f"por {contrato['indice_ajuste']['nombre']}.")
            total += len(por_vencer)
        current_app.logger.info(f"Tarea Programada: {total} contratos por vencer en los próximos {meses} meses.")
        return total
