from __future__ import annotations

import pytest

from rabbitmq_installer.lib.erlang_terms import TermSyntaxError, check_config_terms, check_env_text, tokenize

VALID = """% comment with [unbalanced { brackets
[
  {rabbit, [
    {tcp_listeners, [5672]},
    {default_user, <<"gu,est">>},
    {cluster_nodes, {['rabbit@a', 'rabbit@b.example'], disc}},
    {vm_memory_high_watermark, 0.4}
  ]},
  % between sections
  {kernel, [
    {inet_dist_listen_min, 9100}
  ]}
].
% EOF
"""


def test_valid_config_passes() -> None:
    check_config_terms(VALID)


def test_tokenize_keeps_strings_and_numbers_whole() -> None:
    texts = [t.text for t in tokenize('{a, "x.y, z", 0.4, \'n@h.example\'}')]
    assert texts == ["{", "a", ",", '"x.y, z"', ",", "0.4", ",", "'n@h.example'", "}"]


@pytest.mark.parametrize(
    "text, message",
    [
        ("[\n  {rabbit, [{a, 1},]}\n].", "trailing ','"),
        ("[\n  {rabbit, [{a, 1},, {b, 2}]}\n].", "dangling ','"),
        ("[{rabbit, [{a, 1}]}", "end with '.'"),
        ("[{rabbit, [{a, 1}]].", "unbalanced"),
        ("[{rabbit, [{a, 1}]}\n", "end with '.'"),
        ("[{rabbit, [{a, 1}]} {kernel, []}].", "missing ','"),
        ("[{rabbit, [{a 1}]}].", "missing ','"),
        ("[{rabbit, [\n{a, \"open}]}].", "unterminated string"),
        ("[{rabbit, []}], [].", "outside"),
        ("", "empty"),
    ],
)
def test_malformed_config_is_rejected(text: str, message: str) -> None:
    with pytest.raises(TermSyntaxError, match=message):
        check_config_terms(text)


def test_env_text() -> None:
    check_env_text("# managed\nNODE_PORT=5672\n\nNODE_IP_ADDRESS=10.0.0.1\n")
    with pytest.raises(TermSyntaxError, match="line 2"):
        check_env_text("NODE_PORT=5672\nnot a variable\n")
