import atexit
import functools
import os

from honeylog import (
    EMASampler,
    create_libhoney_client,
    load_config,
    send_event,
)
from honeylog.server import create_app

# Ignoring invalid names here due to all the globals we cache (which aren't necessarily
# constants)
# pylint: disable=invalid-name

# Fails with a ConfigurationError before serving any traffic on invalid deployments
config = load_config(os.environ)

libhoney_client = create_libhoney_client(config.writekey, config.dataset, config.api_host)

sampler = EMASampler(
    config.goal_sample_rate,
    adjustment_interval=config.adjustment_interval,
)
sampler.start()

app = create_app(config, sampler, functools.partial(send_event, libhoney_client))


@atexit.register
def shutdown():
    sampler.stop()
    # Flushes any pending events to honeycomb
    libhoney_client.close()


if __name__ == "__main__":
    print("Starting server on port %d" % config.server_port)
    app.run(host="0.0.0.0", port=config.server_port, threaded=True)
