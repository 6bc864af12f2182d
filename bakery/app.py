# bakery/app.py
import os

import click
from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .auth import register_user
from .errors import BakeryError
from .models import ROLES, db
from .routes import RowIdConverter, api

load_dotenv()


def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///bakery.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'devsecret')
    app.config['TOKEN_MAX_AGE'] = int(os.getenv('TOKEN_MAX_AGE', 24 * 60 * 60))
    app.config['ORDER_DEADLINE_HOURS'] = int(os.getenv('ORDER_DEADLINE_HOURS', 24))
    app.config['CHAT_STREAM_POLL_INTERVAL'] = float(os.getenv('CHAT_STREAM_POLL_INTERVAL', 1.0))
    app.config['CHAT_STREAM_TIMEOUT'] = float(os.getenv('CHAT_STREAM_TIMEOUT', 25.0))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config['LOG_LEVEL'])
    db.init_app(app)
    app.url_map.converters['int'] = RowIdConverter
    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()

    return app


def register_error_handlers(app):
    @app.errorhandler(BakeryError)
    def handle_bakery_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify(message=err.description), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        db.session.rollback()
        app.logger.exception('Unhandled error: %s', err)
        return jsonify(message='Internal server error'), 500


def register_commands(app):
    @app.cli.command('create-user')
    @click.option('--email', required=True)
    @click.option('--username', required=True)
    @click.option('--full-name', required=True)
    @click.option('--role', type=click.Choice(ROLES), default='customer', show_default=True)
    @click.password_option()
    def create_user_command(email, username, full_name, role, password):
        """Create an account directly, e.g. the first admin or a main baker."""
        try:
            user = register_user(email, username, password, full_name, role=role)
        except BakeryError as err:
            raise click.ClickException(err.message)
        click.echo(f'Created {user.role} {user.email} (id {user.id})')
