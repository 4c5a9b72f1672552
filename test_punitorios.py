# test_punitorios.py
"""Cálculo de punitorios: día de gracia, conteo de días y redondeo."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from alquileres.utils.punitorios import (calculate_punitory, effective_grace_date, is_business_day,
                                         parse_fecha_local)

PORCENTAJE = Decimal('0.006')
CARNAVAL_2024 = {date(2024, 2, 12), date(2024, 2, 13)}


def _punitorio(fecha_pago, mes=2, ano=2024, base='100000', feriados=(), ultimo=None):
    return calculate_punitory(fecha_pago, mes, ano, Decimal(base), 10, 10, PORCENTAJE,
                              feriados=feriados, fecha_ultimo_pago=ultimo)


def test_dias_habiles():
    assert is_business_day(date(2024, 2, 9))          # viernes
    assert not is_business_day(date(2024, 2, 10))     # sábado
    assert not is_business_day(date(2024, 2, 11))     # domingo
    assert not is_business_day(date(2024, 2, 12), CARNAVAL_2024)


def test_gracia_corrida_por_fin_de_semana_y_feriados():
    # El 10/02/2024 cae sábado
    assert effective_grace_date(2, 2024, 10) == date(2024, 2, 12)
    assert effective_grace_date(2, 2024, 10, {date(2024, 2, 12)}) == date(2024, 2, 13)
    assert effective_grace_date(2, 2024, 10, CARNAVAL_2024) == date(2024, 2, 14)
    # Día hábil: sin corrimiento
    assert effective_grace_date(1, 2024, 10) == date(2024, 1, 10)


def test_gracia_limitada_al_ultimo_dia_del_mes():
    assert effective_grace_date(2, 2023, 31) == date(2023, 2, 28)


def test_sin_punitorio_dentro_de_la_gracia():
    resultado = _punitorio(date(2024, 2, 12))
    assert resultado.monto == Decimal('0')
    assert resultado.dias == 0
    assert resultado.fecha_gracia == date(2024, 2, 12)


def test_periodo_corriente_cuenta_desde_dia_inicio():
    resultado = _punitorio(date(2024, 2, 13))
    assert resultado.dias == 4
    assert resultado.monto == Decimal('2400.00')
    assert resultado.desde == date(2024, 2, 10)
    assert resultado.hasta == date(2024, 2, 13)


def test_feriados_extienden_la_gracia():
    assert _punitorio(date(2024, 2, 14), feriados=CARNAVAL_2024).monto == Decimal('0')
    assert _punitorio(date(2024, 2, 15), feriados=CARNAVAL_2024).dias == 6


def test_periodo_vencido_cuenta_desde_el_dia_uno():
    resultado = _punitorio(date(2024, 2, 1), mes=1)
    assert resultado.dias == 32
    assert resultado.monto == Decimal('19200.00')
    assert resultado.desde == date(2024, 1, 1)


def test_periodo_vencido_ignora_la_gracia():
    # Pagar enero el 02/02 genera punitorio aunque el 02/02 esté antes de cualquier gracia de febrero
    assert _punitorio(date(2024, 2, 2), mes=1).dias == 33


def test_periodo_futuro_sin_punitorio():
    assert _punitorio(date(2024, 2, 20), mes=3).monto == Decimal('0')


def test_cuenta_desde_el_ultimo_pago():
    resultado = _punitorio(date(2024, 2, 20), ultimo=date(2024, 2, 15))
    assert resultado.dias == 6
    assert resultado.monto == Decimal('3600.00')
    assert resultado.desde == date(2024, 2, 15)


def test_pago_no_posterior_al_ultimo_pago():
    assert _punitorio(date(2024, 2, 15), ultimo=date(2024, 2, 15)).monto == Decimal('0')
    assert _punitorio(date(2024, 2, 14), ultimo=date(2024, 2, 15)).monto == Decimal('0')


def test_la_gracia_prevalece_sobre_el_ultimo_pago():
    assert _punitorio(date(2024, 2, 12), ultimo=date(2024, 2, 5)).monto == Decimal('0')


@pytest.mark.parametrize('base', ['0', '-500'])
def test_base_no_positiva(base):
    resultado = _punitorio(date(2024, 3, 20), base=base)
    assert resultado.monto == Decimal('0')
    assert resultado.dias == 0


def test_redondeo_a_centavos():
    # 33333,33 x 0,006 x 1 = 199,99998
    resultado = calculate_punitory(date(2024, 1, 11), 1, 2024, Decimal('33333.33'), 11, 10, PORCENTAJE)
    assert resultado.dias == 1
    assert resultado.monto == Decimal('200.00')


@pytest.mark.parametrize('valor, esperado', [
    ('2024-03-05', date(2024, 3, 5)),
    ('2024-03-05T23:30:00-03:00', date(2024, 3, 5)),
    ('2024-03-05 08:00:00', date(2024, 3, 5)),
    (datetime(2024, 3, 5, 23, 59), date(2024, 3, 5)),
    (date(2024, 3, 5), date(2024, 3, 5)),
    ('', None),
    (None, None),
])
def test_parse_fecha_local(valor, esperado):
    assert parse_fecha_local(valor) == esperado


def test_parse_fecha_invalida():
    with pytest.raises(ValueError):
        parse_fecha_local('05/03/2024')
