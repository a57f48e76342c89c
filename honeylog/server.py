import random

from flask import Flask, request

from . import process_stream


# Every path and method is treated as an ingest request
INGEST_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app(config, sampler, send, rng=random):
    """
    :param config: A `honeylog.config.Config`.
    :param sampler: The `EMASampler` shared by all requests.
    :param send: Passed on to `process_stream`.
    """
    app = Flask("honeylog")

    @app.route("/", methods=INGEST_METHODS)
    @app.route("/<path:_>", methods=INGEST_METHODS)
    def ingest(_=None):
        # Failures of individual lines are only reported in the summary log,
        # the caller always gets an acknowledgement once the body is consumed
        process_stream(request.stream, config, sampler, send, rng)
        return "", 200

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return "ok", 200

    return app
