from flask import Blueprint

# url_prefix is set when the blueprint is registered in create_app
stock_bp = Blueprint('stock', __name__)

from . import routes
