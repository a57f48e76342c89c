import random
import sys
import threading
import time
from collections import namedtuple

import libhoney
import orjson
from libhoney.errors import SendError as LibhoneySendError

from . import logfmt
from .config import MAX_LINE_LENGTH, load_config
from .exceptions import LineTooLongError, SendError
from .normalize import normalize_record
from .sampler import EMASampler, build_sample_key, should_keep
from .urlshape import compile_pattern
from .version import __version__


IngestResult = namedtuple(
    "IngestResult",
    ["success", "total", "dropped", "parse_errors", "send_errors", "duration_ms"],
)


def process_stream(stream, config, sampler, send, rng=random):
    """
    Sample and forward every line of a newline-delimited json stream.

    :param stream: A binary file-like object, typically the request body.
    :param config: A `honeylog.config.Config`.
    :param sampler: The `EMASampler` shared by all requests.
    :param send: A callable taking `(record, sample_rate, sample_key)`, raising
        `SendError` if the record couldn't be forwarded.
    :param rng: Source of randomness for the keep/drop decisions.
    """
    start_time = time.time()
    total = success = dropped = parse_errors = send_errors = 0

    for line in iter_lines(stream, config.max_line_length):
        total += 1

        if isinstance(line, LineTooLongError):
            sys.stderr.write("Skipping line: %s\n" % line)
            parse_errors += 1
            continue

        try:
            record = parse_line(line)
        except ValueError as err:
            sys.stderr.write("json parsing error %s, raw data: %r\n" % (err, line))
            parse_errors += 1
            continue

        normalize_record(
            record,
            config.url_fields,
            config.path_patterns,
            config.query_params_filter,
        )
        sample_key = build_sample_key(record, config.sampling_fields)
        sampler.record_arrival(sample_key)
        sample_rate, keep = should_keep(sampler.get_sample_rate(sample_key), rng)
        if not keep:
            dropped += 1
            continue

        try:
            send(record, sample_rate, sample_key)
        except SendError as err:
            sys.stderr.write("event send error %s, raw data: %r\n" % (err, line))
            send_errors += 1
            continue

        success += 1

    result = IngestResult(
        success,
        total,
        dropped,
        parse_errors,
        send_errors,
        (time.time() - start_time) * 1000,
    )
    print(logfmt.format(dict(result._asdict(), msg="sampled input lines")))
    return result


def iter_lines(stream, max_line_length=MAX_LINE_LENGTH):
    """
    Yield the lines of a binary stream without their line endings.

    Lines whose content (excluding the line ending) is longer than
    `max_line_length` are skipped up to the next newline and a
    `LineTooLongError` is yielded in their place.
    """
    # Room for the content and a \r\n ending
    read_size = max_line_length + 2
    while True:
        line = stream.readline(read_size)
        if not line:
            return

        content = line[:-1] if line.endswith(b"\n") else line
        if content.endswith(b"\r"):
            content = content[:-1]

        if len(content) > max_line_length:
            discarded = len(line)
            while line and not line.endswith(b"\n"):
                line = stream.readline(read_size)
                discarded += len(line)
            yield LineTooLongError(
                "line of %d bytes exceeds the maximum of %d"
                % (discarded, max_line_length)
            )
            continue

        yield content


def parse_line(line):
    """
    :raises ValueError: If the line isn't a json object.
    """
    record = orjson.loads(line)
    if not isinstance(record, dict):
        raise ValueError("expected a json object, got %s" % type(record).__name__)
    return record


def create_libhoney_client(writekey, dataset, api_host):
    client = libhoney.Client(
        writekey=writekey,
        dataset=dataset,
        block_on_send=False,
        user_agent_addition="honeylog/%s" % __version__,
        api_host=api_host,
    )
    client.add_field("event.parser", "honeylog/%s" % __version__)

    thread = threading.Thread(
        target=read_honeycomb_responses,
        args=(client.responses(), dataset),
        daemon=True,
    )
    thread.start()

    return client


def read_honeycomb_responses(resp_queue, dataset):
    """Log failing responses from honeycomb"""
    while True:
        resp = resp_queue.get()
        if resp is None:
            # The client will enqueue a None value after we call client.close()
            break

        if resp.get("error") or (resp.get("status_code") or 0) >= 400:
            sys.stderr.write(
                "Got %s from honeycomb when submitting to %s: %s\n"
                % (resp.get("status_code"), dataset, resp.get("error"))
            )


def send_event(client, record, sample_rate, sample_key):
    """
    Hand a sampled record over to libhoney. The event is only enqueued, it's
    transmitted in the background.

    :raises SendError: If libhoney refused the event.
    """
    event = client.new_event()
    event.sample_rate = sample_rate
    event.add_field("event.samplekey", sample_key)
    try:
        event.add(record)
        event.send_presampled()
    except (LibhoneySendError, TypeError) as err:
        raise SendError(str(err)) from err
