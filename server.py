import logging

from flask import Blueprint, Flask, Response, abort, current_app, redirect, request
from waitress import serve

from assets import asset_source, content_type_for
from config import ConfigError, load_config
from counters import CachedCounters, DirectCounters, Persistor
from renderer import PageCache, PageRenderer
from store import CounterStore, StoreError

site = Blueprint("site", __name__)


class SiteContext:
    """
    Everything a request handler needs, built once at startup.

    In "cached" mode the homepage comes from a PageCache and counters are
    flushed by a Persistor thread; in "direct" mode every request goes
    straight to the store.
    """

    def __init__(self, app):
        config = app.config
        self.mode = config["COUNTER_MODE"]
        self.cache = None
        self.persistor = None
        self.store = CounterStore.open(config["STORE_PATH"])

        try:
            self.renderer = PageRenderer(app)
            self.assets = asset_source(config["PUBLIC_DIR"], config["DEV_MODE"])
            if self.mode == "cached":
                self.counters = CachedCounters(self.store)
                self.cache = PageCache(self.renderer, self.counters, config["RENDER_WORKERS"])
                self.cache.prime()
                self.persistor = Persistor(self.counters, config["FLUSH_INTERVAL"])
                self.persistor.start()
            else:
                self.counters = DirectCounters(self.store, config["LIKE_MODE"])
        except Exception:
            self.close()
            raise

    def homepage(self):
        if self.cache is not None:
            snapshot = self.cache.current()
            self.cache.schedule_refresh()
            return snapshot.body
        pair = self.counters.record_visit()
        return self.renderer.render(pair)

    def like(self):
        if self.cache is not None:
            return self.counters.increment_like()
        return self.counters.record_like()

    def close(self):
        """Finish pending renders, flush counters, then close the store."""
        if self.cache is not None:
            self.cache.close()
        if self.persistor is not None:
            self.persistor.stop()
        self.store.close()


def current_site():
    return current_app.extensions["jairo"]


@site.get("/")
def index():
    return Response(current_site().homepage(), content_type="text/html; charset=utf-8")


@site.post("/like")
def like():
    current_site().like()
    return redirect(request.referrer or "/")


@site.get("/public/<name>")
def public(name):
    ctx = current_site()
    content_type = content_type_for(name)
    data = ctx.assets.read(name)
    if data is None:
        abort(404)
    response = Response(data)
    if content_type is None:
        del response.headers["Content-Type"]
    else:
        response.headers["Content-Type"] = content_type
    response.headers["Cache-Control"] = ctx.assets.cache_control
    return response


@site.app_errorhandler(StoreError)
def store_failure(e):
    logging.exception("Store failure while handling %s %s", request.method, request.path)
    return "Internal Server Error", 500


def create_app(overrides=None):
    app = Flask(__name__, static_folder=None)
    load_config(app.config, overrides)
    app.template_folder = app.config["TEMPLATE_DIR"]
    app.config["TEMPLATES_AUTO_RELOAD"] = app.config["DEV_MODE"]
    if app.config["DEV_MODE"]:
        logging.info("Running in development mode")

    app.register_blueprint(site)
    app.extensions["jairo"] = SiteContext(app)
    return app


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [JAIRO] %(levelname)s - %(message)s")
    try:
        app = create_app()
    except (StoreError, ConfigError, OSError) as e:
        logging.error("Cannot start: %s", e)
        raise SystemExit(1)

    ctx = app.extensions["jairo"]
    host, port = app.config["HOST"], app.config["PORT"]
    logging.info("Starting jairo on %s:%s (counters=%s)", host, port, ctx.mode)
    try:
        serve(app, host=host, port=port, threads=app.config["THREADS"], ident="jairo")
    finally:
        logging.info("Shutting down")
        ctx.close()


if __name__ == "__main__":
    main()
