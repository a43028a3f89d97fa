import pytest

from layerconf.dimension import generate_dimension
from layerconf.remote import AppEmptyError, ServiceTooLongError


def test_generate_dimension_with_version():
    assert generate_dimension("cart", "1.0.0", "default") == "cart@default#1.0.0"


def test_generate_dimension_without_version():
    assert generate_dimension("cart", "", "default") == "cart@default"


def test_empty_app_raises():
    with pytest.raises(AppEmptyError):
        generate_dimension("cart", "1.0.0", "")


def test_too_long_raises():
    with pytest.raises(ServiceTooLongError):
        generate_dimension("s" * 250, "", "default")


def test_length_limit_is_inclusive():
    name = "s" * (256 - len("@default"))
    assert generate_dimension(name, "", "default") == name + "@default"


@pytest.mark.parametrize("service", ["ca rt", "cart$", "a/b", "x[1]", 'q"'])
def test_forbidden_characters_raise(service):
    with pytest.raises(ValueError, match="invalid value for dimension info"):
        generate_dimension(service, "", "default")