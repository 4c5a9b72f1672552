# alquileres/services/imputacion.py
"""Reparto de los créditos de un registro: servicios, IVA, alquiler y punitorios, en ese orden."""
from dataclasses import dataclass
from decimal import Decimal

from ..utils.montos import CERO, a_decimal, positivo


@dataclass(frozen=True)
class Imputacion:
    servicios_cubiertos: Decimal
    iva_cubierto: Decimal
    alquiler_cubierto: Decimal
    punitorios_cubiertos: Decimal
    servicios_impagos: Decimal
    iva_impago: Decimal
    alquiler_impago: Decimal
    punitorios_impagos: Decimal
    sobrante: Decimal
    total_original: Decimal

    @property
    def total_impago(self):
        return self.alquiler_impago + self.punitorios_impagos

    def to_dict(self):
        return {
            'servicios_cubiertos': self.servicios_cubiertos,
            'iva_cubierto': self.iva_cubierto,
            'alquiler_cubierto': self.alquiler_cubierto,
            'punitorios_cubiertos': self.punitorios_cubiertos,
            'servicios_impagos': self.servicios_impagos,
            'iva_impago': self.iva_impago,
            'alquiler_impago': self.alquiler_impago,
            'punitorios_impagos': self.punitorios_impagos,
            'total_original': self.total_original,
            'total_impago': self.total_impago,
        }


def imputar(creditos, total_servicios, monto_iva, monto_alquiler, monto_punitorios=CERO):
    """Aplica ``creditos`` (pagos + saldo a favor) en orden servicios → IVA → alquiler → punitorios.

    Un neto de servicios negativo (más descuentos que cargos) no se cubre con créditos.
    """
    restante = positivo(creditos)
    servicios = positivo(total_servicios)
    iva = positivo(monto_iva)
    alquiler = positivo(monto_alquiler)
    punitorios = positivo(monto_punitorios)

    cubiertos = []
    for importe in (servicios, iva, alquiler, punitorios):
        cubierto = min(restante, importe)
        restante -= cubierto
        cubiertos.append(cubierto)
    servicios_cub, iva_cub, alquiler_cub, punitorios_cub = cubiertos

    return Imputacion(
        servicios_cubiertos=servicios_cub,
        iva_cubierto=iva_cub,
        alquiler_cubierto=alquiler_cub,
        punitorios_cubiertos=punitorios_cub,
        servicios_impagos=servicios - servicios_cub,
        iva_impago=iva - iva_cub,
        alquiler_impago=alquiler - alquiler_cub,
        punitorios_impagos=punitorios - punitorios_cub,
        sobrante=restante,
        total_original=alquiler + a_decimal(total_servicios) + iva + punitorios,
    )


def imputar_registro(registro, monto_punitorios=None, monto_pagado=None):
    """Imputación de lo ya acreditado en un registro (pagos + saldo a favor del mes anterior)."""
    if monto_punitorios is None:
        monto_punitorios = registro.monto_punitorios
    if monto_pagado is None:
        monto_pagado = registro.monto_pagado
    return imputar(
        a_decimal(monto_pagado) + a_decimal(registro.saldo_anterior),
        registro.total_servicios,
        registro.monto_iva,
        registro.monto_alquiler,
        monto_punitorios,
    )
