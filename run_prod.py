# run_prod.py (en la raíz del proyecto)
import os
from dotenv import load_dotenv

# Cargar variables de entorno desde .env en el directorio del script
script_dir = os.path.dirname(os.path.abspath(__file__))
dotenv_path = os.path.join(script_dir, '.env')
if os.path.exists(dotenv_path):
    print(f"Cargando variables de entorno desde: {dotenv_path}")
    load_dotenv(dotenv_path)
else:
    print(f"ADVERTENCIA: Archivo .env no encontrado en {script_dir}")

from alquileres import create_app

HOST = os.environ.get('ALQUILERES_HOST', '127.0.0.1')
PORT = int(os.environ.get('ALQUILERES_PORT', 5000))
THREADS = int(os.environ.get('ALQUILERES_THREADS', 4))

app = create_app()

if __name__ == '__main__':
    print(f"API de alquileres en http://{HOST}:{PORT}/api/grupos/<grupo_id>/")
    from waitress import serve
    serve(app, host=HOST, port=PORT, threads=THREADS)
