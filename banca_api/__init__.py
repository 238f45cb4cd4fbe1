from flask import Flask
from dotenv import load_dotenv
from flask_jwt_extended import JWTManager
from flask_socketio import SocketIO
from flask_compress import Compress
from flask_cors import CORS
import os
import atexit
import logging
load_dotenv()
from .config import Config
from .routes.swagger_route import swagger_bp, swaggerui_blueprint

logger = logging.getLogger(__name__)

socketio = SocketIO(cors_allowed_origins="*")
compress = Compress()

# Handlers registrados antes de qualquer init_app: o SocketIO os reaplica em cada app criado
from .sockets import system_events  # noqa: E402,F401


def _register_jwt_callbacks(jwt):
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return {
            "error": "Sua sessão expirou, faça login novamente",
            "code": "SESSION_EXPIRED",
        }, 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return {
            "error": "Token inválido, faça login novamente",
            "code": "INVALID_TOKEN",
        }, 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return {
            "error": "Token de acesso necessário",
            "code": "MISSING_TOKEN",
        }, 401


def _register_error_handlers(app):
    @app.errorhandler(400)
    def bad_request(error):
        return {"error": "Requisição inválida", "code": "BAD_REQUEST"}, 400

    @app.errorhandler(401)
    def unauthorized(error):
        return {"error": "Não autorizado", "code": "UNAUTHORIZED"}, 401

    @app.errorhandler(403)
    def forbidden(error):
        return {"error": "Acesso negado", "code": "FORBIDDEN"}, 403

    @app.errorhandler(404)
    def not_found(error):
        return {"error": "Recurso não encontrado", "code": "NOT_FOUND"}, 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return {"error": "Método não permitido", "code": "METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(429)
    def too_many_requests(error):
        return {"error": "Muitas requisições. Tente novamente mais tarde.", "code": "RATE_LIMIT_EXCEEDED"}, 429

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Erro interno do servidor: {error}", exc_info=True)
        # Não expõe detalhes do erro ao cliente em produção
        if app.config.get('DEBUG'):
            return {"error": str(error), "code": "INTERNAL_ERROR"}, 500
        return {"error": "Erro interno do servidor", "code": "INTERNAL_ERROR"}, 500


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    compress.init_app(app)

    allowed_origins = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    if allowed_origins != '*':
        allowed_origins = [origin.strip() for origin in allowed_origins.split(',')]
    CORS(app, resources={
        r"/api/*": {
            "origins": allowed_origins,
            "methods": ['GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS'],
            "allow_headers": ['Content-Type', 'Authorization'],
            "supports_credentials": True
        }
    })

    jwt = JWTManager(app)
    _register_jwt_callbacks(jwt)
    socketio.init_app(app)

    from .routes.caixa_routes import caixa_bp
    app.register_blueprint(caixa_bp, url_prefix='/api/caixa')
    from .routes.surebet_routes import surebet_bp
    app.register_blueprint(surebet_bp, url_prefix='/api/surebets')
    from .routes.bookmaker_routes import bookmaker_bp, cotacao_bp
    app.register_blueprint(bookmaker_bp, url_prefix='/api/bookmakers')
    app.register_blueprint(cotacao_bp, url_prefix='/api/cotacoes')
    from .routes.relatorio_routes import relatorio_bp
    app.register_blueprint(relatorio_bp, url_prefix='/api/relatorios')
    app.register_blueprint(swagger_bp, url_prefix='/api/docs')
    app.register_blueprint(swaggerui_blueprint, url_prefix='/api/docs')

    @app.after_request
    def set_security_headers(response):
        """Headers de segurança HTTP em todas as respostas"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if os.environ.get('FLASK_ENV') not in ('development', 'dev', 'test'):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    _register_error_handlers(app)

    # O pool é criado na primeira chamada de get_db_connection() e fechado ao encerrar
    from .database import close_pool
    atexit.register(close_pool)

    @app.route('/api/health')
    def health_check():
        return {"status": "ok", "service": "banca-api"}

    return app
