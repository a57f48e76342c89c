import pytest

from honeylog.server import create_app


@pytest.fixture
def client(config, sampler, sink, rng):
    app = create_app(config, sampler, sink, rng)
    app.config["TESTING"] = True
    return app.test_client()


def test_ingest(client, sink):
    data = b'{"user":"a","path":"/x/1?y=2"}\n{"user":"b"}\n'

    response = client.post("/", data=data)

    assert response.status_code == 200
    assert response.data == b""
    assert [sample_key for _, _, sample_key in sink.sent] == ["a", "b"]
    assert sink.sent[0][0]["path.path"] == "/x/1"


def test_ingest_with_errors_still_acknowledges(client, sink):
    sink.failing_keys.add("b")
    data = b"\n".join(
        [b'{"user":"a"}', b"garbage", b'{"user":"b"}', b'{"user":"%s"}' % (b"x" * 200)]
    )

    response = client.put("/", data=data)

    assert response.status_code == 200
    assert [sample_key for _, _, sample_key in sink.sent] == ["a"]


def test_empty_body(client, sink):
    response = client.post("/", data=b"")

    assert response.status_code == 200
    assert sink.sent == []


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.data == b"ok"


@pytest.mark.parametrize("path", ["/logs", "/v1/events/batch"])
def test_ingest_on_any_path(client, sink, path):
    response = client.post(path, data=b'{"user":"a"}\n')

    assert response.status_code == 200
    assert [sample_key for _, _, sample_key in sink.sent] == ["a"]


def test_ingest_with_patch(client, sink):
    response = client.patch("/", data=b'{"user":"a"}\n')

    assert response.status_code == 200
    assert len(sink.sent) == 1
