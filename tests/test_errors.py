import pytest

from minkapi.errors import (
    InitFailedError,
    LoadConfigTemplateError,
    MinKAPIError,
    MissingOptionError,
    ServiceFailedError,
    StartFailedError,
)


def test_message_without_detail():
    assert str(StartFailedError()) == "minkapi start failed"
    assert str(InitFailedError()) == "minkapi init failed"
    assert str(MissingOptionError()) == "missing option"
    assert str(LoadConfigTemplateError()) == "cannot load config template"


def test_message_with_detail():
    err = MissingOptionError("--kubeconfig/-k flag is required")
    assert str(err) == "missing option: --kubeconfig/-k flag is required"
    assert err.detail == "--kubeconfig/-k flag is required"


@pytest.mark.parametrize(
    "cls",
    [InitFailedError, StartFailedError, ServiceFailedError, MissingOptionError, LoadConfigTemplateError],
)
def test_all_errors_are_caught_as_base(cls):
    err = cls("boom")
    assert isinstance(err, MinKAPIError)
    assert err.detail == "boom"
    assert str(err) == f"{cls.base_message}: boom"
    with pytest.raises(MinKAPIError, match="boom$"):
        raise err


def test_service_failed_prefix():
    assert str(ServiceFailedError("x")).startswith("minkapi service")