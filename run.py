import os
import sys
import logging
from flask import Flask
from series_tracker.repo import PostgresRepo, RepoError
from series_tracker.service import SeriesService
from series_tracker.web import register_routes, register_cors, register_error_handlers

DEFAULT_CFG = {
    "db_host": "db",
    "db_port": 5432,
    "db_user": "user",
    "db_password": "password",
    "db_name": "seriesdb",
    "host": "0.0.0.0",
    "port": 8080,
    "logging_level": "INFO"
}

# only the store connection is configurable
ENV_KEYS = {
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
    "DB_NAME": "db_name",
}

logger = logging.getLogger(__name__)

def load_config(environ=None):
    environ = os.environ if environ is None else environ
    merged = DEFAULT_CFG.copy()
    for env_name, key in ENV_KEYS.items():
        value = environ.get(env_name)
        if value:
            merged[key] = value
    try:
        merged["db_port"] = int(merged["db_port"])
    except ValueError:
        logger.warning("DB_PORT %r is not a number, using %s", merged["db_port"], DEFAULT_CFG["db_port"])
        merged["db_port"] = DEFAULT_CFG["db_port"]
    return merged

def configure_logging(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # werkzeug writes one access line per request
    logging.getLogger("werkzeug").setLevel(logging.INFO)

def build_repo(cfg) -> PostgresRepo:
    return PostgresRepo(
        host=cfg["db_host"],
        port=cfg["db_port"],
        user=cfg["db_user"],
        password=cfg["db_password"],
        dbname=cfg["db_name"],
    )

def create_app(repo=None, cfg=None):
    """
    Build the Flask app around an injected store.
    Without `repo` a PostgresRepo is built from the environment. The series
    table is created if missing; RepoError propagates to the caller.
    """
    cfg = cfg or load_config()
    configure_logging(cfg.get("logging_level", "INFO"))
    logger.info("Starting app with config: %s", {k: v for k, v in cfg.items() if k != "db_password"})

    if repo is None:
        repo = build_repo(cfg)
    repo.ensure_schema()

    app = Flask(__name__)
    service = SeriesService(repo)
    register_cors(app)
    register_routes(app, service)
    register_error_handlers(app)
    return app

def main():
    cfg = load_config()
    configure_logging(cfg.get("logging_level", "INFO"))
    try:
        repo = build_repo(cfg)
    except RepoError as e:
        logger.critical("Error connecting to database: %s", e)
        sys.exit(1)
    try:
        app = create_app(repo=repo, cfg=cfg)
    except RepoError as e:
        logger.critical("Error creating tables: %s", e)
        repo.close()
        sys.exit(1)
    try:
        app.run(host=cfg["host"], port=cfg["port"], threaded=True)
    finally:
        repo.close()

if __name__ == "__main__":
    main()
