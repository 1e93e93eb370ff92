import logging
from concurrent.futures import ThreadPoolExecutor

from flask import Flask

from config import Config
from models import db
from routes.balances import balances_bp
from services.balance_service import BalanceRefresher
from services.sql_stores import SqlExpenseStore, SqlGroupStore, SqlUserDirectory


# --------------------------------------------------
# APP SETUP
# --------------------------------------------------

def configure_logging(level):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app.config["LOG_LEVEL"])
    db.init_app(app)

    workers = app.config["FETCH_WORKERS"]
    executor = ThreadPoolExecutor(max_workers=workers) if workers > 0 else None

    app.extensions["balance_refresher"] = BalanceRefresher(
        SqlGroupStore(app),
        SqlExpenseStore(app),
        user_directory=SqlUserDirectory(app),
        executor=executor,
        default_currency=app.config["DEFAULT_CURRENCY"],
        unknown_name=app.config["UNKNOWN_USER_NAME"],
    )

    app.register_blueprint(balances_bp)

    with app.app_context():
        db.create_all()

    return app


# --------------------------------------------------
# RUN
# --------------------------------------------------

if __name__ == "__main__":
    create_app().run(debug=True)
