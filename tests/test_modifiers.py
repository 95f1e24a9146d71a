from dataclasses import dataclass, replace

from gatewayproxy.modifiers import (
    get_request_modifier,
    get_response_modifier,
    register_modifier,
)


@dataclass
class _Wrapper:
    path: str = ""


def _path_modifier_factory(config):
    def modifier(wrapper):
        return replace(wrapper, path=wrapper.path.rstrip("/") + "/fooo")

    return modifier


def test_register_and_apply_request_modifier(capsys):
    register_modifier("request-modifier-example", _path_modifier_factory, True, False)
    assert "registering request modifier: request-modifier-example" in capsys.readouterr().out

    factory = get_request_modifier("request-modifier-example")
    assert factory is _path_modifier_factory

    modifier = factory({})
    output = modifier(_Wrapper(path="/bar"))
    assert output.path == "/bar/fooo"

    assert get_response_modifier("request-modifier-example") is None


def test_register_response_modifier_only():
    register_modifier("response-only", _path_modifier_factory, False, True)
    assert get_response_modifier("response-only") is _path_modifier_factory
    assert get_request_modifier("response-only") is None


def test_register_for_both(capsys):
    register_modifier("both-ways", _path_modifier_factory, True, True)
    out = capsys.readouterr().out
    assert "registering request modifier: both-ways" in out
    assert "registering response modifier: both-ways" in out
    assert get_request_modifier("both-ways") is _path_modifier_factory
    assert get_response_modifier("both-ways") is _path_modifier_factory


def test_unknown_modifier():
    assert get_request_modifier("never-registered") is None
    assert get_response_modifier("never-registered") is None


def test_non_callable_factory_is_ignored():
    register_modifier("not-a-factory", 42, True, False)
    assert get_request_modifier("not-a-factory") is None