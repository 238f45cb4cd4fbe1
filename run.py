from banca_api import create_app, socketio  # importa factory do app e instância do SocketIO
import os
import logging

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)

app = create_app()

if __name__ == '__main__':
    if not os.environ.get('FLASK_ENV'):
        os.environ['FLASK_ENV'] = 'development'

    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') in ('development', 'dev')

    logging.getLogger(__name__).info(
        f"Iniciando Banca API em http://{host}:{port} (modo {os.environ.get('FLASK_ENV')})"
    )
    socketio.run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=debug)
