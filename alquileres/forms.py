# alquileres/forms.py
# Formularios de entrada de la API. Flask-WTF toma el cuerpo JSON como formdata en
# POST/PUT/PATCH; para GET se pasa request.args explícitamente.
from flask_wtf import FlaskForm
from wtforms import StringField, BooleanField, SelectField, TextAreaField, DecimalField, IntegerField, DateField
from wtforms.validators import DataRequired, InputRequired, Length, Optional, NumberRange

from .models import MetodoPago
from .errors import ValidationError

METODOS_PAGO = [(m.value, m.value.capitalize()) for m in MetodoPago]


def validar_formulario(form):
    """Valida el formulario o lanza ValidationError con los errores por campo."""
    if form.validate():
        return form
    errores = {campo: mensajes for campo, mensajes in form.errors.items()}
    primero = next(iter(errores.items()))
    raise ValidationError(f"{primero[0]}: {primero[1][0]}", errores=errores)


# --- PERÍODO ---
class PeriodoForm(FlaskForm):
    mes = IntegerField('Mes', validators=[DataRequired(), NumberRange(min=1, max=12, message='El mes debe estar entre 1 y 12.')])
    ano = IntegerField('Año', validators=[DataRequired(), NumberRange(min=2000, max=2100)])
    estado = SelectField('Estado', choices=[('', 'Todos'), ('PENDING', 'Pendiente'), ('PARTIAL', 'Parcial'), ('COMPLETE', 'Completo')],
                         validators=[Optional()], default='')
    contrato_id = IntegerField('Contrato', validators=[Optional()])
    busqueda = StringField('Buscar', validators=[Optional(), Length(max=100)])
    fecha_calculo = DateField('Fecha de cálculo', validators=[Optional()])

    def filtros(self):
        return {
            'estado': self.estado.data or None,
            'contrato_id': self.contrato_id.data,
            'busqueda': self.busqueda.data,
        }


# --- PAGO DE REGISTRO MENSUAL ---
class PagoForm(FlaskForm):
    fecha_pago = DateField('Fecha de Pago', validators=[DataRequired(message='La fecha de pago es obligatoria.')])
    monto = DecimalField('Monto', places=2, validators=[DataRequired(message='El monto es obligatorio.'),
                                                       NumberRange(min=0.01, message='El monto debe ser mayor a cero.')])
    metodo_pago = SelectField('Método de Pago', choices=METODOS_PAGO, default=MetodoPago.EFECTIVO.value)
    condonar_punitorios = BooleanField('Condonar Punitorios')
    generar_recibo = BooleanField('Generar Recibo')
    observaciones = TextAreaField('Observaciones', validators=[Optional(), Length(max=500)])

    def datos(self):
        return {
            'fecha_pago': self.fecha_pago.data,
            'monto': self.monto.data,
            'metodo_pago': self.metodo_pago.data,
            'condonar_punitorios': self.condonar_punitorios.data,
            'generar_recibo': self.generar_recibo.data,
            'observaciones': self.observaciones.data,
        }


# --- PAGO DE DEUDA ---
class PagoDeudaForm(FlaskForm):
    fecha_pago = DateField('Fecha de Pago', validators=[DataRequired(message='La fecha de pago es obligatoria.')])
    monto = DecimalField('Monto', places=2, validators=[DataRequired(message='El monto es obligatorio.'),
                                                       NumberRange(min=0.01, message='El monto debe ser mayor a cero.')])
    metodo_pago = SelectField('Método de Pago', choices=METODOS_PAGO, default=MetodoPago.EFECTIVO.value)
    observaciones = TextAreaField('Observaciones', validators=[Optional(), Length(max=500)])


# --- SERVICIOS DEL MES ---
class ServicioForm(FlaskForm):
    tipo_concepto_id = IntegerField('Concepto', validators=[DataRequired()])
    monto = DecimalField('Monto', places=2, validators=[InputRequired(), NumberRange(min=0, message='El monto no puede ser negativo.')])
    descripcion = StringField('Descripción', validators=[Optional(), Length(max=200)])


class MontoServicioForm(FlaskForm):
    monto = DecimalField('Monto', places=2, validators=[InputRequired(), NumberRange(min=0, message='El monto no puede ser negativo.')])
    descripcion = StringField('Descripción', validators=[Optional(), Length(max=200)])


# --- AJUSTES ---
class AjusteForm(FlaskForm):
    indice_ajuste_id = IntegerField('Índice', validators=[DataRequired()])
    porcentaje = DecimalField('Porcentaje', places=4, validators=[InputRequired(), NumberRange(min=-100, max=1000)])
    fecha = DateField('Fecha de referencia', validators=[Optional()])


class DeshacerAjusteForm(FlaskForm):
    indice_ajuste_id = IntegerField('Índice', validators=[DataRequired()])
    numero_mes = IntegerField('Mes de Contrato', validators=[DataRequired(), NumberRange(min=1)])


# --- FERIADOS ---
class FeriadoForm(FlaskForm):
    fecha = DateField('Fecha', validators=[DataRequired(message='La fecha es obligatoria.')])
    nombre = StringField('Nombre', validators=[DataRequired(), Length(min=2, max=120)])


# --- CONTRATOS ---
class ContratoForm(FlaskForm):
    propiedad_id = IntegerField('Propiedad', validators=[DataRequired()])
    fecha_inicio = DateField('Fecha de Inicio', validators=[DataRequired()])
    duracion_meses = IntegerField('Duración (meses)', validators=[DataRequired(), NumberRange(min=1, max=240)])
    mes_inicio = IntegerField('Mes de Inicio', validators=[Optional(), NumberRange(min=1)], default=1)
    renta_base = DecimalField('Renta', places=2, validators=[DataRequired(), NumberRange(min=0.01)])
    indice_ajuste_id = IntegerField('Índice de Ajuste', validators=[Optional()])
    dia_inicio_punitorios = IntegerField('Día de Inicio de Punitorios', validators=[Optional(), NumberRange(min=1, max=31)])
    dia_gracia_punitorios = IntegerField('Día de Gracia', validators=[Optional(), NumberRange(min=1, max=31)])
    porcentaje_punitorios = DecimalField('Porcentaje Diario', places=6, validators=[Optional(), NumberRange(min=0, max=1)])
    observaciones = TextAreaField('Observaciones', validators=[Optional(), Length(max=1000)])
