from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

# Extension objects (bound to the app in create_app)
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


@login_manager.request_loader
def load_user_from_request(request):
    """
    Resolve the acting user from the X-User-Id header.
    Authentication itself happens upstream at the gateway; this only maps the
    forwarded identity onto a local user row.
    """
    from solarstock.models import User
    user_id = request.headers.get('X-User-Id', type=int)
    if not user_id:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    from flask import jsonify
    return jsonify({'success': False, 'code': 401, 'message': 'Authentication required'}), 401
