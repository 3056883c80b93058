from starlette.datastructures import QueryParams

from tokengate.middleware.auth import (
    CONNECTION_TOKEN_COOKIE_NAME,
    CONNECTION_TOKEN_QUERY_NAME,
    request_has_valid_connection_token,
)
from tokengate.models.schemas import MandatoryConnectionToken, NoneConnectionToken

TOKEN = MandatoryConnectionToken(value="abc-123")


def test_query_parameter_authorizes_regardless_of_cookies() -> None:
    query = {CONNECTION_TOKEN_QUERY_NAME: "abc-123"}
    assert request_has_valid_connection_token(TOKEN, query, None)
    assert request_has_valid_connection_token(TOKEN, query, f"{CONNECTION_TOKEN_COOKIE_NAME}=wrong")


def test_cookie_authorizes_without_query_parameter() -> None:
    cookie = f"theme=dark; {CONNECTION_TOKEN_COOKIE_NAME}=abc-123"
    assert request_has_valid_connection_token(TOKEN, {}, cookie)


def test_wrong_query_value_and_no_cookie_is_rejected() -> None:
    assert not request_has_valid_connection_token(TOKEN, {CONNECTION_TOKEN_QUERY_NAME: "abc-124"}, None)


def test_wrong_query_value_falls_through_to_cookie() -> None:
    query = {CONNECTION_TOKEN_QUERY_NAME: "abc-124"}
    assert request_has_valid_connection_token(TOKEN, query, f"{CONNECTION_TOKEN_COOKIE_NAME}=abc-123")


def test_other_cookie_names_are_ignored() -> None:
    assert not request_has_valid_connection_token(TOKEN, {}, "tkn=abc-123; session=abc-123")


def test_empty_cookie_header_is_rejected() -> None:
    assert not request_has_valid_connection_token(TOKEN, {}, "")


def test_starlette_query_params_are_accepted() -> None:
    assert request_has_valid_connection_token(TOKEN, QueryParams("tkn=abc-123&x=1"), None)
    assert not request_has_valid_connection_token(TOKEN, QueryParams("x=abc-123"), None)


def test_non_string_query_value_is_rejected() -> None:
    assert not request_has_valid_connection_token(TOKEN, {CONNECTION_TOKEN_QUERY_NAME: ["abc-123"]}, None)


def test_none_token_authorizes_bare_request() -> None:
    assert request_has_valid_connection_token(NoneConnectionToken(), {}, None)


def test_repeated_query_parameter_is_rejected() -> None:
    assert not request_has_valid_connection_token(TOKEN, QueryParams("tkn=wrong&tkn=abc-123"), None)
    assert not request_has_valid_connection_token(TOKEN, QueryParams("tkn=abc-123&tkn=abc-123"), None)


def test_repeated_query_parameter_still_falls_through_to_cookie() -> None:
    cookie = f"{CONNECTION_TOKEN_COOKIE_NAME}=abc-123"
    assert request_has_valid_connection_token(TOKEN, QueryParams("tkn=wrong&tkn=abc-123"), cookie)


def test_first_duplicate_cookie_wins() -> None:
    name = CONNECTION_TOKEN_COOKIE_NAME
    assert request_has_valid_connection_token(TOKEN, {}, f"{name}=abc-123; {name}=zzz")
    assert not request_has_valid_connection_token(TOKEN, {}, f"{name}=zzz; {name}=abc-123")
