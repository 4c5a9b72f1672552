# alquileres/utils/punitorios.py
"""Cálculo de punitorios (recargo diario por mora).

Funciones puras: no tocan la base de datos ni dependen del reloj. Todas las fechas se
tratan como días de calendario (``datetime.date``), de modo que la zona horaria no
altera el conteo de días.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from .montos import CERO, a_decimal, redondear_2


@dataclass(frozen=True)
class ResultadoPunitorio:
    monto: Decimal
    dias: int
    fecha_gracia: date
    desde: Optional[date] = None
    hasta: Optional[date] = None

    def to_dict(self):
        return {
            'monto': self.monto,
            'dias': self.dias,
            'fecha_gracia': self.fecha_gracia,
            'desde': self.desde,
            'hasta': self.hasta,
        }


def parse_fecha_local(valor, default=None):
    """Normaliza str ('YYYY-MM-DD' con o sin hora), datetime o date a ``date``."""
    if valor is None or valor == '':
        return default
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    texto = str(valor).strip().split('T')[0].split(' ')[0]
    try:
        return datetime.strptime(texto, '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"Fecha inválida: {valor!r}")


def normalizar_feriados(feriados: Optional[Iterable]) -> frozenset:
    if not feriados:
        return frozenset()
    if isinstance(feriados, frozenset):
        return feriados
    return frozenset(parse_fecha_local(f) for f in feriados)


def is_business_day(fecha: date, feriados=()) -> bool:
    if fecha.weekday() >= 5: # sábado=5, domingo=6
        return False
    return fecha not in normalizar_feriados(feriados)


def _dia_en_mes(ano: int, mes: int, dia: int) -> date:
    ultimo = calendar.monthrange(ano, mes)[1]
    return date(ano, mes, min(max(int(dia), 1), ultimo))


def effective_grace_date(mes: int, ano: int, dia_gracia: int, feriados=()) -> date:
    """Día de gracia del período corrido al siguiente día hábil (nunca al anterior)."""
    feriados = normalizar_feriados(feriados)
    fecha = _dia_en_mes(ano, mes, dia_gracia)
    while not is_business_day(fecha, feriados):
        fecha += timedelta(days=1)
    return fecha


def calculate_punitory(fecha_pago, mes: int, ano: int, monto_base, dia_inicio: int,
                       dia_gracia: int, porcentaje_diario, feriados=(),
                       fecha_ultimo_pago=None) -> ResultadoPunitorio:
    """Punitorio a una fecha de pago para el período ``mes``/``ano``.

    ``porcentaje_diario`` es una fracción (0.006 = 0,6 % diario). Con
    ``fecha_ultimo_pago`` el conteo arranca en ese pago (ambos extremos incluidos),
    sin importar si el período es pasado o corriente.
    """
    fecha_pago = parse_fecha_local(fecha_pago)
    fecha_ultimo_pago = parse_fecha_local(fecha_ultimo_pago)
    monto_base = a_decimal(monto_base)
    porcentaje_diario = a_decimal(porcentaje_diario)

    fecha_gracia = effective_grace_date(mes, ano, dia_gracia, feriados)
    sin_punitorio = ResultadoPunitorio(monto=CERO, dias=0, fecha_gracia=fecha_gracia)

    if monto_base <= 0:
        return sin_punitorio

    periodo_corriente_o_futuro = (ano, mes) >= (fecha_pago.year, fecha_pago.month)
    if periodo_corriente_o_futuro and fecha_pago <= fecha_gracia:
        return sin_punitorio

    if fecha_ultimo_pago is not None:
        if fecha_pago <= fecha_ultimo_pago:
            return sin_punitorio
        desde = fecha_ultimo_pago
    elif not periodo_corriente_o_futuro:
        desde = date(ano, mes, 1)
    else:
        desde = _dia_en_mes(ano, mes, dia_inicio)

    dias = max((fecha_pago - desde).days + 1, 0)
    if dias == 0:
        return sin_punitorio

    monto = redondear_2(monto_base * porcentaje_diario * dias)
    return ResultadoPunitorio(monto=monto, dias=dias, fecha_gracia=fecha_gracia,
                              desde=desde, hasta=fecha_pago)
