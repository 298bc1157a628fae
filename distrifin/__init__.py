from flask import Flask
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_mail import Mail

import logging

db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()
mail = Mail()

def create_app(config_object='distrifin.config.Config'):
    app = Flask(__name__)
    CORS(app)

    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    db.init_app(app)
    jwt.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    with app.app_context():
        from . import models
        from .store import register_store_listeners
        from .routes import main
        from .auth import auth
        from .cli import admin_cli
        app.register_blueprint(main)
        app.register_blueprint(auth, url_prefix='/auth')
        app.cli.add_command(admin_cli)
        register_store_listeners()
        db.create_all()

    return app
