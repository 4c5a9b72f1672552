# conftest.py
from datetime import date
from decimal import Decimal

import pytest

from alquileres import create_app, db
from alquileres.models import (Grupo, Propietario, Propiedad, Inquilino, IndiceAjuste, TipoConcepto,
                               CategoriaConcepto, Contrato)
from alquileres.services.contratos import registrar_contrato


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SCHEDULER_ENABLED': False,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def grupo(app):
    grupo = Grupo(nombre='Administración Centro')
    db.session.add(grupo)
    db.session.commit()
    return grupo


@pytest.fixture
def indice_trimestral(grupo):
    indice = IndiceAjuste(grupo_id=grupo.id, nombre='ICL', frecuencia_meses=3, valor_actual=Decimal('0'))
    db.session.add(indice)
    db.session.commit()
    return indice


@pytest.fixture
def tipos_concepto(grupo):
    tipos = {
        'ABL': TipoConcepto(grupo_id=grupo.id, nombre='ABL', etiqueta='ABL', categoria=CategoriaConcepto.IMPUESTO),
        'AGUA': TipoConcepto(grupo_id=grupo.id, nombre='AGUA', etiqueta='Agua', categoria=CategoriaConcepto.SERVICIO),
        'DESCUENTO': TipoConcepto(grupo_id=grupo.id, nombre='DESCUENTO', etiqueta='Descuento',
                                  categoria=CategoriaConcepto.DESCUENTO),
    }
    db.session.add_all(tipos.values())
    db.session.commit()
    return tipos


@pytest.fixture
def crear_contrato(grupo):
    """Fábrica de contratos con propiedad e inquilino propios."""
    contador = {'n': 0}

    def _crear(renta='100000', fecha_inicio=date(2024, 1, 1), duracion_meses=12, mes_inicio=1,
               indice=None, hoy=None, inquilinos=('Juan Pérez',), **extra):
        contador['n'] += 1
        propietario = Propietario(grupo_id=grupo.id, nombre=f"Propietario {contador['n']}")
        propiedad = Propiedad(grupo_id=grupo.id, direccion=f"Av. Siempreviva {740 + contador['n']}",
                              codigo=f"P-{contador['n']:03d}", propietario=propietario)
        nuevos = [Inquilino(grupo_id=grupo.id, nombre=nombre) for nombre in inquilinos]
        db.session.add_all([propietario, propiedad, *nuevos])
        db.session.commit()

        datos = {
            'propiedad_id': propiedad.id,
            'fecha_inicio': fecha_inicio,
            'duracion_meses': duracion_meses,
            'mes_inicio': mes_inicio,
            'renta_base': renta,
            'indice_ajuste_id': indice.id if indice else None,
            'inquilino_ids': [i.id for i in nuevos],
        }
        datos.update(extra)
        contrato = registrar_contrato(grupo.id, datos, hoy=hoy or fecha_inicio)
        return db.session.get(Contrato, contrato.id)

    return _crear
