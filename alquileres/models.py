# alquileres/models.py
import enum
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import UniqueConstraint, Numeric, Integer, String, Boolean, DateTime, Text
from . import db, MESES_STR

# --- CONSTANTES ---
DEFAULT_IVA_RATE = Decimal('0.21')
DEFAULT_DIA_INICIO_PUNITORIOS = 10
DEFAULT_DIA_GRACIA_PUNITORIOS = 10
DEFAULT_PORCENTAJE_PUNITORIOS = Decimal('0.006') # 0,6 % diario

# Tipos de concepto de una transacción (además del nombre del TipoConcepto de cada servicio)
CONCEPTO_A_FAVOR = 'A_FAVOR'
CONCEPTO_ALQUILER = 'ALQUILER'
CONCEPTO_PUNITORIOS = 'PUNITORIOS'
CONCEPTO_IVA = 'IVA'
CONCEPTO_SOBREPAGO = 'SOBREPAGO'
CONCEPTO_ALQUILER_DEUDA = 'ALQUILER_DEUDA'


class EstadoRegistro(enum.Enum):
    PENDING = 'PENDING'
    PARTIAL = 'PARTIAL'
    COMPLETE = 'COMPLETE'


class EstadoDeuda(enum.Enum):
    OPEN = 'OPEN'
    PARTIAL = 'PARTIAL'
    PAID = 'PAID'


ESTADOS_DEUDA_ABIERTA = (EstadoDeuda.OPEN, EstadoDeuda.PARTIAL)


class CategoriaConcepto(enum.Enum):
    IMPUESTO = 'IMPUESTO'
    SERVICIO = 'SERVICIO'
    EXPENSA = 'EXPENSA'
    GASTO = 'GASTO'
    MANTENIMIENTO = 'MANTENIMIENTO'
    DESCUENTO = 'DESCUENTO'
    BONIFICACION = 'BONIFICACION'
    OTRO = 'OTRO'

    @property
    def resta(self):
        return self in (CategoriaConcepto.DESCUENTO, CategoriaConcepto.BONIFICACION)


class MetodoPago(enum.Enum):
    EFECTIVO = 'EFECTIVO'
    TRANSFERENCIA = 'TRANSFERENCIA'
    CHEQUE = 'CHEQUE'
    TARJETA = 'TARJETA'
    OTRO = 'OTRO'


class MotivoActualizacion(enum.Enum):
    INICIAL = 'INICIAL'
    AJUSTE_AUTOMATICO = 'AJUSTE_AUTOMATICO'
    AJUSTE_MANUAL = 'AJUSTE_MANUAL'


def _enum_col(enum_cls, **kwargs):
    return db.Column(db.Enum(enum_cls, native_enum=False, length=20, validate_strings=True), **kwargs)


def _money_col(**kwargs):
    kwargs.setdefault('nullable', False)
    kwargs.setdefault('default', Decimal('0.00'))
    return db.Column(Numeric(12, 2), **kwargs)


# --------------------------------------------

class Grupo(db.Model):
    __tablename__ = 'grupo'
    id = db.Column(Integer, primary_key=True)
    nombre = db.Column(String(150), nullable=False)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)
    def __repr__(self): return f'<Grupo {self.id}: {self.nombre}>'


class Propietario(db.Model):
    __tablename__ = 'propietario'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    nombre = db.Column(String(150), nullable=False)
    dni = db.Column(String(20))
    telefono = db.Column(String(30))
    email = db.Column(String(120))
    propiedades = db.relationship('Propiedad', back_populates='propietario', lazy='select')
    def __repr__(self): return f'<Propietario {self.id}: {self.nombre}>'


class Propiedad(db.Model):
    __tablename__ = 'propiedad'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    propietario_id = db.Column(Integer, db.ForeignKey('propietario.id'), nullable=True)
    direccion = db.Column(String(200), nullable=False)
    codigo = db.Column(String(30))
    categoria = db.Column(String(50))
    propietario = db.relationship('Propietario', back_populates='propiedades')
    def __repr__(self): return f'<Propiedad {self.id}: {self.direccion}>'


class Inquilino(db.Model):
    __tablename__ = 'inquilino'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    nombre = db.Column(String(150), nullable=False)
    dni = db.Column(String(20))
    telefono = db.Column(String(30))
    email = db.Column(String(120))
    def __repr__(self): return f'<Inquilino {self.id}: {self.nombre}>'

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre, 'dni': self.dni}


class ContratoInquilino(db.Model):
    __tablename__ = 'contrato_inquilino'
    id = db.Column(Integer, primary_key=True)
    contrato_id = db.Column(Integer, db.ForeignKey('contrato.id', ondelete='CASCADE'), nullable=False, index=True)
    inquilino_id = db.Column(Integer, db.ForeignKey('inquilino.id'), nullable=False)
    es_principal = db.Column(Boolean, default=False, nullable=False)
    orden = db.Column(Integer, default=0, nullable=False)
    inquilino = db.relationship('Inquilino')
    __table_args__ = (UniqueConstraint('contrato_id', 'inquilino_id', name='uq_contrato_inquilino'),)


class IndiceAjuste(db.Model):
    __tablename__ = 'indice_ajuste'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    nombre = db.Column(String(50), nullable=False) # 'ICL', 'IPC', 'Casa Propia'...
    frecuencia_meses = db.Column(Integer, nullable=False, default=12)
    valor_actual = db.Column(Numeric(8, 4), nullable=False, default=Decimal('0')) # Porcentaje, ej 12.5
    fecha_ultima_actualizacion = db.Column(db.Date, nullable=True)
    def __repr__(self): return f'<IndiceAjuste {self.id}: {self.nombre} c/{self.frecuencia_meses}m>'

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre, 'frecuencia_meses': self.frecuencia_meses,
                'valor_actual': self.valor_actual}


class Contrato(db.Model):
    __tablename__ = 'contrato'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    propiedad_id = db.Column(Integer, db.ForeignKey('propiedad.id'), nullable=False)
    fecha_inicio = db.Column(db.Date, nullable=False)
    fecha_fin = db.Column(db.Date)
    mes_inicio = db.Column(Integer, nullable=False, default=1) # Número de mes de contrato asignado al alta
    duracion_meses = db.Column(Integer, nullable=False)
    mes_actual = db.Column(Integer, nullable=False, default=1) # Solo de referencia, no se usa para facturar
    renta_base = db.Column(Numeric(12, 2), nullable=False) # Renta vigente (la modifican los ajustes)
    indice_ajuste_id = db.Column(Integer, db.ForeignKey('indice_ajuste.id'), nullable=True)
    proximo_mes_ajuste = db.Column(Integer, nullable=True)
    dia_inicio_punitorios = db.Column(Integer, nullable=False, default=DEFAULT_DIA_INICIO_PUNITORIOS)
    dia_gracia_punitorios = db.Column(Integer, nullable=False, default=DEFAULT_DIA_GRACIA_PUNITORIOS)
    porcentaje_punitorios = db.Column(Numeric(8, 6), nullable=False, default=DEFAULT_PORCENTAJE_PUNITORIOS)
    activo = db.Column(Boolean, nullable=False, default=True)
    observaciones = db.Column(Text)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    propiedad = db.relationship('Propiedad', backref=db.backref('contratos', lazy='select'))
    indice_ajuste = db.relationship('IndiceAjuste', backref=db.backref('contratos', lazy='select'))
    contrato_inquilinos = db.relationship(
        'ContratoInquilino', lazy='select', cascade="all, delete-orphan",
        order_by=lambda: (ContratoInquilino.es_principal.desc(), ContratoInquilino.orden)
    )

    __table_args__ = (
        # Un solo contrato activo por propiedad
        db.Index('uq_contrato_activo_por_propiedad', 'propiedad_id', unique=True,
                 sqlite_where=db.text('activo = 1'), postgresql_where=db.text('activo')),
    )

    @property
    def inquilinos(self):
        return [ci.inquilino for ci in self.contrato_inquilinos]

    @property
    def inquilino_principal(self):
        return self.contrato_inquilinos[0].inquilino if self.contrato_inquilinos else None

    @property
    def nombre_inquilinos(self):
        nombres = [i.nombre for i in self.inquilinos]
        return ' / '.join(nombres) if nombres else 'Sin inquilino'

    def resumen(self):
        """Datos planos del contrato para los listados."""
        propiedad = self.propiedad
        return {
            'id': self.id,
            'fecha_inicio': self.fecha_inicio,
            'fecha_fin': self.fecha_fin,
            'duracion_meses': self.duracion_meses,
            'mes_actual': self.mes_actual,
            'renta_base': self.renta_base,
            'proximo_mes_ajuste': self.proximo_mes_ajuste,
            'dia_inicio_punitorios': self.dia_inicio_punitorios,
            'dia_gracia_punitorios': self.dia_gracia_punitorios,
            'porcentaje_punitorios': self.porcentaje_punitorios,
            'indice_ajuste': self.indice_ajuste.to_dict() if self.indice_ajuste else None,
            'inquilinos': [i.to_dict() for i in self.inquilinos],
            'inquilino': self.nombre_inquilinos,
            'propiedad': {'id': propiedad.id, 'direccion': propiedad.direccion, 'codigo': propiedad.codigo} if propiedad else None,
            'propietario': propiedad.propietario.nombre if propiedad and propiedad.propietario else None,
        }

    def __repr__(self): return f'<Contrato {self.id}: propiedad {self.propiedad_id}>'


class HistorialActualizacionRenta(db.Model):
    __tablename__ = 'historial_actualizacion_renta'
    id = db.Column(db.Integer, primary_key=True)
    contrato_id = db.Column(db.Integer, db.ForeignKey('contrato.id', ondelete='CASCADE'), nullable=False, index=True)
    efectivo_desde_mes = db.Column(db.Integer, nullable=False) # Número de mes de contrato
    fecha_actualizacion = db.Column(db.Date, nullable=False, default=date.today) # Fecha en que se aplicó

    renta_anterior = db.Column(Numeric(12, 2), nullable=True)
    renta_nueva = db.Column(Numeric(12, 2), nullable=False)
    porcentaje = db.Column(Numeric(8, 4), nullable=True)

    tipo_actualizacion = _enum_col(MotivoActualizacion, nullable=False)
    descripcion_adicional = db.Column(db.Text, nullable=True)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    contrato = db.relationship('Contrato', backref=db.backref('historial_actualizaciones', lazy='dynamic', cascade="all, delete-orphan"))

    def to_dict(self):
        return {
            'id': self.id,
            'contrato_id': self.contrato_id,
            'efectivo_desde_mes': self.efectivo_desde_mes,
            'renta_anterior': self.renta_anterior,
            'renta_nueva': self.renta_nueva,
            'porcentaje': self.porcentaje,
            'tipo_actualizacion': self.tipo_actualizacion.value,
            'fecha_actualizacion': self.fecha_actualizacion,
        }

    def __repr__(self):
        return f'<HistorialActualizacionRenta {self.id}: contrato {self.contrato_id} mes {self.efectivo_desde_mes} -> {self.renta_nueva}>'


class TipoConcepto(db.Model):
    __tablename__ = 'tipo_concepto'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    nombre = db.Column(String(50), nullable=False) # 'ABL', 'AGUA', 'DESCUENTO_PRONTO_PAGO'
    etiqueta = db.Column(String(100))
    categoria = _enum_col(CategoriaConcepto, nullable=False, default=CategoriaConcepto.SERVICIO)
    activo = db.Column(Boolean, nullable=False, default=True)
    __table_args__ = (UniqueConstraint('grupo_id', 'nombre', name='uq_tipo_concepto_grupo_nombre'),)

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre, 'etiqueta': self.etiqueta,
                'categoria': self.categoria.value}

    def __repr__(self): return f'<TipoConcepto {self.id}: {self.nombre} ({self.categoria.value})>'


class RegistroMensual(db.Model):
    __tablename__ = 'registro_mensual'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    contrato_id = db.Column(Integer, db.ForeignKey('contrato.id'), nullable=False, index=True)
    numero_mes = db.Column(Integer, nullable=False) # Mes relativo al contrato
    mes_periodo = db.Column(Integer, nullable=False)
    ano_periodo = db.Column(Integer, nullable=False)

    monto_alquiler = _money_col()
    total_servicios = _money_col()
    saldo_anterior = _money_col() # Saldo a favor del mes anterior (>= 0)
    monto_punitorios = _money_col() # Congelado en el último pago
    dias_punitorios = db.Column(Integer, nullable=False, default=0)
    punitorios_condonados = db.Column(Boolean, nullable=False, default=False)
    incluye_iva = db.Column(Boolean, nullable=False, default=False)
    total_adeudado = _money_col()
    monto_pagado = _money_col()
    saldo = _money_col() # monto_pagado - total_adeudado (positivo = a favor)

    estado = _enum_col(EstadoRegistro, nullable=False, default=EstadoRegistro.PENDING)
    cancelado = db.Column(Boolean, nullable=False, default=False)
    pagado = db.Column(Boolean, nullable=False, default=False)
    fecha_pago_total = db.Column(db.Date, nullable=True)
    observaciones = db.Column(Text)
    version = db.Column(Integer, nullable=False)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    contrato = db.relationship('Contrato', backref=db.backref('registros_mensuales', lazy='dynamic'))
    servicios = db.relationship('ServicioMensual', back_populates='registro', lazy='select',
                                cascade="all, delete-orphan", order_by='ServicioMensual.id')
    transacciones = db.relationship('TransaccionPago', back_populates='registro', lazy='select',
                                    cascade="all, delete-orphan",
                                    order_by=lambda: (TransaccionPago.fecha_pago, TransaccionPago.id))
    deuda = db.relationship('Deuda', back_populates='registro', uselist=False, lazy='select')

    __table_args__ = (
        UniqueConstraint('contrato_id', 'mes_periodo', 'ano_periodo', name='uq_registro_contrato_periodo'),
        UniqueConstraint('contrato_id', 'numero_mes', name='uq_registro_contrato_numero_mes'),
    )
    __mapper_args__ = {'version_id_col': version}

    @property
    def monto_iva(self):
        if not self.incluye_iva:
            return Decimal('0.00')
        return (self.monto_alquiler * DEFAULT_IVA_RATE).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @property
    def etiqueta_periodo(self):
        return f"{MESES_STR[self.mes_periodo]} {self.ano_periodo}"

    def to_dict(self):
        return {
            'id': self.id,
            'contrato_id': self.contrato_id,
            'numero_mes': self.numero_mes,
            'mes_periodo': self.mes_periodo,
            'ano_periodo': self.ano_periodo,
            'monto_alquiler': self.monto_alquiler,
            'total_servicios': self.total_servicios,
            'saldo_anterior': self.saldo_anterior,
            'monto_punitorios': self.monto_punitorios,
            'dias_punitorios': self.dias_punitorios,
            'punitorios_condonados': self.punitorios_condonados,
            'incluye_iva': self.incluye_iva,
            'total_adeudado': self.total_adeudado,
            'monto_pagado': self.monto_pagado,
            'saldo': self.saldo,
            'estado': self.estado.value,
            'cancelado': self.cancelado,
            'pagado': self.pagado,
            'fecha_pago_total': self.fecha_pago_total,
            'observaciones': self.observaciones,
            'servicios': [s.to_dict() for s in self.servicios],
            'transacciones': [t.to_dict() for t in self.transacciones],
        }

    def __repr__(self):
        return f'<RegistroMensual {self.id}: contrato {self.contrato_id} {self.mes_periodo:02d}/{self.ano_periodo} [{self.estado.value}]>'


class ServicioMensual(db.Model):
    __tablename__ = 'servicio_mensual'
    id = db.Column(Integer, primary_key=True)
    registro_mensual_id = db.Column(Integer, db.ForeignKey('registro_mensual.id', ondelete='CASCADE'), nullable=False, index=True)
    tipo_concepto_id = db.Column(Integer, db.ForeignKey('tipo_concepto.id'), nullable=False)
    monto = db.Column(Numeric(12, 2), nullable=False)
    descripcion = db.Column(String(200))
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    registro = db.relationship('RegistroMensual', back_populates='servicios')
    tipo_concepto = db.relationship('TipoConcepto')

    __table_args__ = (UniqueConstraint('registro_mensual_id', 'tipo_concepto_id', name='uq_servicio_registro_tipo'),)

    @property
    def monto_con_signo(self):
        """Negativo para descuentos y bonificaciones, positivo para el resto."""
        if self.tipo_concepto.categoria.resta:
            return -abs(self.monto)
        return self.monto

    def to_dict(self):
        return {
            'id': self.id,
            'registro_mensual_id': self.registro_mensual_id,
            'tipo_concepto': self.tipo_concepto.to_dict() if self.tipo_concepto else None,
            'monto': self.monto,
            'descripcion': self.descripcion,
        }


class TransaccionPago(db.Model):
    __tablename__ = 'transaccion_pago'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    registro_mensual_id = db.Column(Integer, db.ForeignKey('registro_mensual.id', ondelete='CASCADE'), nullable=False, index=True)
    pago_deuda_id = db.Column(Integer, db.ForeignKey('pago_deuda.id', ondelete='SET NULL'), nullable=True, unique=True)
    fecha_pago = db.Column(db.Date, nullable=False)
    monto = db.Column(Numeric(12, 2), nullable=False)
    metodo_pago = _enum_col(MetodoPago, nullable=False, default=MetodoPago.EFECTIVO)
    monto_punitorios = _money_col()
    dias_punitorios = db.Column(Integer, nullable=False, default=0)
    punitorios_condonados = db.Column(Boolean, nullable=False, default=False)
    recibo_generado = db.Column(Boolean, nullable=False, default=False)
    numero_recibo = db.Column(String(20), nullable=True)
    observaciones = db.Column(Text)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    registro = db.relationship('RegistroMensual', back_populates='transacciones')
    pago_deuda = db.relationship('PagoDeuda', back_populates='transaccion')
    conceptos = db.relationship('ConceptoTransaccion', back_populates='transaccion', lazy='select',
                                cascade="all, delete-orphan", order_by='ConceptoTransaccion.id')

    def to_dict(self):
        return {
            'id': self.id,
            'registro_mensual_id': self.registro_mensual_id,
            'pago_deuda_id': self.pago_deuda_id,
            'fecha_pago': self.fecha_pago,
            'monto': self.monto,
            'metodo_pago': self.metodo_pago.value,
            'monto_punitorios': self.monto_punitorios,
            'dias_punitorios': self.dias_punitorios,
            'punitorios_condonados': self.punitorios_condonados,
            'recibo_generado': self.recibo_generado,
            'numero_recibo': self.numero_recibo,
            'observaciones': self.observaciones,
            'conceptos': [c.to_dict() for c in self.conceptos],
        }

    def __repr__(self): return f'<TransaccionPago {self.id}: {self.monto} el {self.fecha_pago}>'


class ConceptoTransaccion(db.Model):
    __tablename__ = 'concepto_transaccion'
    id = db.Column(Integer, primary_key=True)
    transaccion_id = db.Column(Integer, db.ForeignKey('transaccion_pago.id', ondelete='CASCADE'), nullable=False, index=True)
    tipo = db.Column(String(50), nullable=False)
    descripcion = db.Column(String(200))
    monto = db.Column(Numeric(12, 2), nullable=False)
    informativo = db.Column(Boolean, nullable=False, default=False) # No descuenta del importe pagado

    transaccion = db.relationship('TransaccionPago', back_populates='conceptos')

    def to_dict(self):
        return {'tipo': self.tipo, 'descripcion': self.descripcion, 'monto': self.monto,
                'informativo': self.informativo}


class Deuda(db.Model):
    __tablename__ = 'deuda'
    id = db.Column(Integer, primary_key=True)
    grupo_id = db.Column(Integer, db.ForeignKey('grupo.id'), nullable=False, index=True)
    contrato_id = db.Column(Integer, db.ForeignKey('contrato.id'), nullable=False, index=True)
    registro_mensual_id = db.Column(Integer, db.ForeignKey('registro_mensual.id'), nullable=False, unique=True)
    etiqueta_periodo = db.Column(String(40))
    mes_periodo = db.Column(Integer, nullable=False)
    ano_periodo = db.Column(Integer, nullable=False)

    monto_original = _money_col()
    monto_alquiler_impago = _money_col() # Fijado al crear la deuda
    pago_previo_registro = _money_col() # Lo pagado en el registro antes del cierre (informativo)
    punitorios_acumulados = _money_col() # Último punitorio calculado
    total_actual = _money_col()
    monto_pagado = _money_col() # Suma de los pagos de la deuda
    porcentaje_punitorios = db.Column(Numeric(8, 6), nullable=False, default=DEFAULT_PORCENTAJE_PUNITORIOS)
    fecha_inicio_punitorios = db.Column(db.Date, nullable=False)
    fecha_ultimo_pago = db.Column(db.Date, nullable=True)

    estado = _enum_col(EstadoDeuda, nullable=False, default=EstadoDeuda.OPEN)
    fecha_cierre = db.Column(DateTime, nullable=True)
    version = db.Column(Integer, nullable=False)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    contrato = db.relationship('Contrato', backref=db.backref('deudas', lazy='dynamic'))
    registro = db.relationship('RegistroMensual', back_populates='deuda')
    pagos = db.relationship('PagoDeuda', back_populates='deuda', lazy='select',
                            cascade="all, delete-orphan", order_by='PagoDeuda.id')

    __mapper_args__ = {'version_id_col': version}

    @property
    def abierta(self):
        return self.estado in ESTADOS_DEUDA_ABIERTA

    def to_dict(self):
        return {
            'id': self.id,
            'contrato_id': self.contrato_id,
            'registro_mensual_id': self.registro_mensual_id,
            'etiqueta_periodo': self.etiqueta_periodo,
            'mes_periodo': self.mes_periodo,
            'ano_periodo': self.ano_periodo,
            'monto_original': self.monto_original,
            'monto_alquiler_impago': self.monto_alquiler_impago,
            'pago_previo_registro': self.pago_previo_registro,
            'punitorios_acumulados': self.punitorios_acumulados,
            'total_actual': self.total_actual,
            'monto_pagado': self.monto_pagado,
            'porcentaje_punitorios': self.porcentaje_punitorios,
            'fecha_inicio_punitorios': self.fecha_inicio_punitorios,
            'fecha_ultimo_pago': self.fecha_ultimo_pago,
            'estado': self.estado.value,
            'fecha_cierre': self.fecha_cierre,
            'pagos': [p.to_dict() for p in self.pagos],
        }

    def __repr__(self): return f'<Deuda {self.id}: {self.etiqueta_periodo} [{self.estado.value}]>'


class PagoDeuda(db.Model):
    __tablename__ = 'pago_deuda'
    id = db.Column(Integer, primary_key=True)
    deuda_id = db.Column(Integer, db.ForeignKey('deuda.id', ondelete='CASCADE'), nullable=False, index=True)
    fecha_pago = db.Column(db.Date, nullable=False)
    monto = db.Column(Numeric(12, 2), nullable=False)
    punitorio_al_pago = _money_col() # Punitorio total calculado en ese momento (para revertir LIFO)
    metodo_pago = _enum_col(MetodoPago, nullable=False, default=MetodoPago.EFECTIVO)
    observaciones = db.Column(Text)
    fecha_creacion = db.Column(DateTime, default=datetime.utcnow)

    deuda = db.relationship('Deuda', back_populates='pagos')
    transaccion = db.relationship('TransaccionPago', back_populates='pago_deuda', uselist=False)

    def to_dict(self):
        return {
            'id': self.id,
            'deuda_id': self.deuda_id,
            'fecha_pago': self.fecha_pago,
            'monto': self.monto,
            'punitorio_al_pago': self.punitorio_al_pago,
            'metodo_pago': self.metodo_pago.value,
            'observaciones': self.observaciones,
        }


class Feriado(db.Model):
    __tablename__ = 'feriado'
    id = db.Column(Integer, primary_key=True)
    fecha = db.Column(db.Date, nullable=False, unique=True)
    nombre = db.Column(String(120), nullable=False)
    ano = db.Column(Integer, nullable=False, index=True)

    def to_dict(self):
        return {'id': self.id, 'fecha': self.fecha, 'nombre': self.nombre, 'ano': self.ano}

    def __repr__(self): return f'<Feriado {self.fecha}: {self.nombre}>'
