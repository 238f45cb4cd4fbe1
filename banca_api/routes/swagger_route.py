from flask import Blueprint, jsonify, current_app
from flask_swagger_ui import get_swaggerui_blueprint
import yaml
import os
import logging

logger = logging.getLogger(__name__)

swagger_bp = Blueprint('swagger', __name__)

SWAGGER_URL = '/api/docs'
API_URL = '/api/docs/swagger.yaml'

swaggerui_blueprint = get_swaggerui_blueprint(
    SWAGGER_URL,
    API_URL,
    config={'app_name': "Banca API Docs"}
)


@swagger_bp.route('/swagger.yaml')
def serve_swagger_yaml():
    yaml_path = os.path.join(current_app.root_path, 'openapi', 'swagger.yaml')
    try:
        with open(yaml_path, 'r', encoding='utf-8') as f:
            swagger_spec = yaml.safe_load(f)
        return jsonify(swagger_spec)
    except FileNotFoundError:
        return jsonify({"error": f"Arquivo swagger.yaml não encontrado: {yaml_path}"}), 404
    except yaml.YAMLError as e:
        logger.error(f"swagger.yaml inválido: {e}")
        return jsonify({"error": f"Não foi possível carregar o swagger.yaml: {e}"}), 500
