import pytest

from honeylog.exceptions import InvalidUrlError
from honeylog.urlshape import compile_pattern, urlshape, UrlShape


@pytest.mark.parametrize(
    "uri,pattern,query_params_filter,expected",
    [
        (
            "/foo",
            "/:first",
            None,
            UrlShape(
                "/foo",
                "/:first",
                "/foo",
                "",
                "/:first",
                "",
                {"first": "foo"},
                {},
            ),
        ),
        (
            "/foo?key=val",
            "/other",
            None,
            UrlShape(
                "/foo?key=val",
                "/foo?key=?",
                "/foo",
                "key=val",
                "/foo",
                "key=?",
                {},
                {"key": ["val"]},
            ),
        ),
        (
            "/foo?key=val",
            "/other",
            set(),
            UrlShape(
                "/foo?key=val",
                "/foo?key=?",
                "/foo",
                "key=val",
                "/foo",
                "key=?",
                {},
                {},
            ),
        ),
        (
            "/foo?key=val&filtered=ignore",
            "/other",
            set(["key"]),
            UrlShape(
                "/foo?key=val&filtered=ignore",
                "/foo?filtered=?&key=?",
                "/foo",
                "key=val&filtered=ignore",
                "/foo",
                "filtered=?&key=?",
                {},
                {"key": ["val"]},
            ),
        ),
        (
            "/user/id1337/pictures?key=val",
            "/user/:userId/*",
            None,
            UrlShape(
                "/user/id1337/pictures?key=val",
                "/user/:userId/*?key=?",
                "/user/id1337/pictures",
                "key=val",
                "/user/:userId/*",
                "key=?",
                {"userId": "id1337"},
                {"key": ["val"]},
            ),
        ),
        (
            "https://example.com/search?q=a&q=b",
            "/other",
            None,
            UrlShape(
                "https://example.com/search?q=a&q=b",
                "/search?q=?&q=?",
                "/search",
                "q=a&q=b",
                "/search",
                "q=?&q=?",
                {},
                {"q": ["a", "b"]},
            ),
        ),
    ],
)
def test_urlshape(uri, pattern, query_params_filter, expected):
    ret = urlshape(uri, [compile_pattern(pattern)], query_params_filter)
    assert ret == expected


def test_first_matching_pattern_wins():
    patterns = [
        compile_pattern(p)
        for p in ["/other/thing/:thingId", "/users/:userId/pictures", "/users/:userId"]
    ]
    ret = urlshape("/users/id1337", patterns)
    assert ret.path_shape == "/users/:userId"
    assert ret.path_params == {"userId": "id1337"}


def test_explicit_trailing_slash():
    patterns = [compile_pattern("/users/:userId/")]
    assert urlshape("/users/id1337/", patterns).path_shape == "/users/:userId/"
    # Without the trailing slash it should no longer match
    assert urlshape("/users/id1337", patterns).path_shape == "/users/id1337"


def test_implicit_trailing_slash():
    patterns = [compile_pattern("/users/:userId")]
    assert urlshape("/users/id1337/", patterns).path_shape == "/users/:userId"


def test_double_slash_is_a_path():
    ret = urlshape("//evil.example.com/x", [])
    assert ret.path == "//evil.example.com/x"


@pytest.mark.parametrize(
    "uri", ["", "relative/path", "example.com/foo", "/foo\nbar", "http://[::1/foo"]
)
def test_invalid_uri(uri):
    with pytest.raises(InvalidUrlError):
        urlshape(uri, [])
