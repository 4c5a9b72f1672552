# test_concurrencia.py
"""Escrituras concurrentes sobre registros y deudas: el control de versión rechaza la segunda."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from alquileres import create_app, db
from alquileres.models import RegistroMensual, Deuda, TransaccionPago
from alquileres.services import pagos
from alquileres.services.cierre_mensual import close_month
from alquileres.services.registros_mensuales import get_or_create_monthly_records


@pytest.fixture
def app(tmp_path):
    # Base en archivo: cada sesión trabaja con su propia conexión
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'alquileres.db'}",
        'SCHEDULER_ENABLED': False,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _registro_enero(grupo):
    return get_or_create_monthly_records(grupo.id, 1, 2024, fecha_calculo=date(2024, 1, 5))['registros'][0]


def test_dos_sesiones_sobre_el_mismo_registro(grupo, crear_contrato):
    crear_contrato()
    registro_id = _registro_enero(grupo)['id']

    with Session(db.engine) as primera, Session(db.engine) as segunda:
        a = primera.get(RegistroMensual, registro_id)
        b = segunda.get(RegistroMensual, registro_id)
        assert a.version == b.version

        a.monto_pagado = Decimal('60000.00')
        primera.commit()

        b.monto_pagado = Decimal('40000.00')
        with pytest.raises(StaleDataError):
            segunda.commit()

    assert db.session.get(RegistroMensual, registro_id).monto_pagado == Decimal('60000.00')


def test_dos_sesiones_sobre_la_misma_deuda(grupo, crear_contrato):
    crear_contrato(renta='50000')
    _registro_enero(grupo)
    close_month(grupo.id, 1, 2024, fecha_calculo=date(2024, 2, 1))
    deuda_id = Deuda.query.one().id

    with Session(db.engine) as primera, Session(db.engine) as segunda:
        a = primera.get(Deuda, deuda_id)
        b = segunda.get(Deuda, deuda_id)

        a.monto_pagado = Decimal('20000.00')
        primera.commit()

        b.monto_pagado = Decimal('5000.00')
        with pytest.raises(StaleDataError):
            segunda.commit()

    assert db.session.get(Deuda, deuda_id).monto_pagado == Decimal('20000.00')


def test_pago_sobre_registro_modificado_en_paralelo(client, grupo, crear_contrato, monkeypatch):
    crear_contrato()
    registro_id = _registro_enero(grupo)['id']
    chequeo_original = pagos.can_pay_current_month

    def _chequeo_con_escritura_ajena(*args, **kwargs):
        # Otra operación guarda el mismo registro mientras este pago está en curso
        with db.engine.begin() as conexion:
            conexion.execute(text("UPDATE registro_mensual SET version = version + 1 WHERE id = :id"),
                             {'id': registro_id})
        return chequeo_original(*args, **kwargs)

    monkeypatch.setattr(pagos, 'can_pay_current_month', _chequeo_con_escritura_ajena)
    respuesta = client.post(f"/api/grupos/{grupo.id}/registros/{registro_id}/pagos",
                            json={'fecha_pago': '2024-01-05', 'monto': '60000', 'metodo_pago': 'TRANSFERENCIA'})

    assert respuesta.status_code == 409
    datos = respuesta.get_json()
    assert datos['success'] is False
    assert 'Reintente' in datos['message']
    assert TransaccionPago.query.count() == 0
