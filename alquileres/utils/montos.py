# alquileres/utils/montos.py
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

TWO_PLACES = Decimal('0.01')
UN_PESO = Decimal('1')
CERO = Decimal('0.00')

# Margen fijo para dar por saldado un registro o una deuda (diferencias de redondeo
# entre la vista previa y el pago). No es configurable.
TOLERANCIA_PAGO = Decimal('1')


def a_decimal(valor, default=CERO):
    """Convierte int/float/str/None a Decimal sin arrastrar errores binarios de float."""
    if valor is None or valor == '':
        return default
    if isinstance(valor, Decimal):
        return valor
    try:
        return Decimal(str(valor))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Importe inválido: {valor!r}")


def redondear_2(valor):
    return a_decimal(valor).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def redondear_peso(valor):
    """Redondeo al peso para totales de pantalla."""
    return a_decimal(valor).quantize(UN_PESO, rounding=ROUND_HALF_UP)


def positivo(valor):
    valor = a_decimal(valor)
    return valor if valor > 0 else CERO
